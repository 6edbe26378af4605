import unittest

from mongodoc import Database, Schema, FK_TYPE, ForeignKey, extract_fks
from mongodoc import exc
from mongodoc.drivers import MemoryDriver

from . import models


class ForeignKeysTest(unittest.TestCase):
    """ Test extract_fks() and ForeignKeysBag """

    @classmethod
    def setUpClass(cls):
        cls.db = models.declare_schemas(Database(MemoryDriver()))

    def test_users(self):
        """ Test the foreign keys of `users` """
        bags = extract_fks(self.db.resolve('users').schema, cache=False)

        self.assertEqual(bags.as_dict(), {
            'favourite': {'type': 'ref', 'ref': 'widgets'},
            'items': {'type': 'ref_array', 'ref': 'widgets'},
            'most_purchased': {'type': 'subdocument', 'ref': None},
            'most_purchased.item': {'type': 'ref', 'ref': 'widgets'},
            'most_purchased._id': {'type': 'ref', 'ref': None},
            'settings': {'type': 'subdocument', 'ref': None},
            'settings.featured': {'type': 'ref', 'ref': 'widgets'},
        })

        self.assertEqual(bags['favourite'], ForeignKey('favourite', FK_TYPE.REF, 'widgets', False))
        self.assertEqual(bags['items'], ForeignKey('items', FK_TYPE.REF_ARRAY, 'widgets', True))
        self.assertEqual(bags['most_purchased'], ForeignKey('most_purchased', FK_TYPE.SUBDOCUMENT, None, True))
        self.assertEqual(bags['settings'], ForeignKey('settings', FK_TYPE.SUBDOCUMENT, None, False))

        # The document's own id is not a foreign key
        self.assertNotIn('_id', bags)

        self.assertEqual(bags.ref_names, {'favourite', 'items', 'most_purchased.item',
                                          'most_purchased._id', 'settings.featured'})
        self.assertEqual(bags.get_invalid_names(['favourite', 'name']), {'name'})

    def test_groups_widgets(self):
        """ Test the foreign keys of `groups` and `widgets` """
        bags = extract_fks(self.db.resolve('groups').schema, cache=False)
        self.assertEqual(bags.as_dict(), {
            'users': {'type': 'ref_array', 'ref': 'users'},
            'preferences': {'type': 'subdocument', 'ref': None},
            'preferences.defaults': {'type': 'subdocument', 'ref': None},
            'preferences.defaults.items': {'type': 'ref_array', 'ref': 'widgets'},
        })

        bags = extract_fks(self.db.resolve('widgets').schema, cache=False)
        self.assertEqual(len(bags), 0)

    def test_resolving_ref(self):
        """ Test ForeignKeysBag.resolving_ref() """
        bags = extract_fks(self.db.resolve('users').schema)

        self.assertEqual(bags.resolving_ref('favourite.color').path, 'favourite')
        self.assertEqual(bags.resolving_ref('items.color').path, 'items')
        self.assertEqual(bags.resolving_ref('most_purchased.item.color').path, 'most_purchased.item')
        self.assertEqual(bags.resolving_ref('settings.featured.name').path, 'settings.featured')

        # Not through a reference
        self.assertIsNone(bags.resolving_ref('favourite'))
        self.assertIsNone(bags.resolving_ref('settings.lang'))
        self.assertIsNone(bags.resolving_ref('most_purchased.number'))
        # References with no target can't be resolved
        self.assertIsNone(bags.resolving_ref('most_purchased._id.x'))

    def test_determinism(self):
        """ Test that the same schema always gives the same foreign keys """
        schema = self.db.resolve('users').schema
        a = extract_fks(schema, cache=False)
        b = extract_fks(schema, cache=False)
        self.assertEqual(a, b)
        self.assertEqual(list(a.as_dict()), list(b.as_dict()))

        # Another schema with the same declaration
        db = models.declare_schemas(Database(MemoryDriver()))
        self.assertEqual(extract_fks(db.resolve('users').schema), a)

    def test_cache(self):
        """ Test memoization """
        schema = self.db.resolve('groups').schema
        a = extract_fks(schema)
        self.assertIs(extract_fks(schema), a)

        # Bypass: recompute, and memoize the new one
        b = extract_fks(schema, cache=False)
        self.assertIsNot(b, a)
        self.assertEqual(b, a)
        self.assertIs(extract_fks(schema), b)

        # Model.get_fks() uses the same memo
        self.assertIs(self.db.resolve('groups').get_fks(), b)

    def test_max_depth(self):
        """ Test the nesting limit """
        schema = Schema('deep', {'a': {'b': {'c': {'type': 'pointer', 'ref': 'deep'}}}})

        bags = extract_fks(schema, cache=False, max_depth=3)
        self.assertIn('a.b.c', bags)

        with self.assertRaises(exc.SchemaError):
            extract_fks(schema, cache=False, max_depth=2)

        # Configured with a setting
        db = Database(MemoryDriver(), dict(max_depth=2))
        deep = db.schema('deep', {'a': {'b': {'c': str}}})
        with self.assertRaises(exc.SchemaError):
            deep.get_fks(cache=False)
