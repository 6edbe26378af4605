import unittest

from mongodoc import Database, DatabaseSettingsDict, DocQuery
from mongodoc import exc
from mongodoc.drivers import MemoryDriver
from mongodoc.handlers import DocLimit, DocSelect, DocFilter
from mongodoc.util import HandlerSettings


class SettingsTest(unittest.TestCase):
    """ Test DatabaseSettingsDict and HandlerSettings """

    def test_settings_dict(self):
        settings = DatabaseSettingsDict(max_items=10)
        self.assertEqual(settings['max_items'], 10)
        self.assertEqual(settings['refetch'], True)
        self.assertEqual(settings['count_enabled'], True)

        # A full settings dict is valid
        Database(MemoryDriver(), settings)

    def test_invalid(self):
        with self.assertRaises(KeyError) as e:
            Database(MemoryDriver(), dict(max_itemz=10))
        self.assertIn('max_itemz', str(e.exception))

        with self.assertRaises(KeyError):
            Database(MemoryDriver(), dict(aggregate_enabled=False))

    def test_handler_settings(self):
        settings = HandlerSettings(dict(max_items=10, default_exclude=('_password',), sort_enabled=False))

        # Each handler gets only its own settings
        self.assertEqual(settings.get_settings(DocLimit), dict(max_items=10))
        self.assertEqual(settings.get_settings(DocSelect), dict(default_exclude=('_password',)))
        self.assertEqual(settings.get_settings(DocFilter), dict(force_filter=None))

        # Database settings have defaults
        self.assertEqual(settings.get('refetch'), True)
        self.assertEqual(settings.get('max_depth'), 32)

        # Enabled handlers
        self.assertTrue(settings.is_handler_enabled('limit'))
        self.assertFalse(settings.is_handler_enabled('sort'))
        with self.assertRaises(exc.DisabledError):
            settings.raise_if_not_handler_enabled('users', 'sort')

        settings.raise_if_invalid_settings(DocQuery.handler_classes())

    def test_handler_classes(self):
        self.assertEqual(list(DocQuery.handler_classes()),
                         ['count', 'select', 'sort', 'filter', 'populate', 'limit'])
        self.assertIs(DocQuery.handler_classes()['limit'], DocLimit)
