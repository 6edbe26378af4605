import threading
import unittest

from mongodoc import Document
from mongodoc.handlers import PopulatePath
from mongodoc import exc

from . import models
from .util import DriverCallLogger, ExpectedQueryCounter


class PopulateTest(unittest.TestCase):
    """ Test population of references """

    def setUp(self):
        self.db = models.get_memory_db()

    def test_populate(self):
        """ Test every kind of reference """
        db = self.db

        joe = db.get({'$collection': 'users', '$id': 'user-joe',
                      '$populate': ['favourite', 'items', 'most_purchased.item', 'settings.featured']})

        # Reference
        self.assertIsInstance(joe['favourite'], Document)
        self.assertEqual(joe['favourite'].collection, 'widgets')
        self.assertEqual(joe['favourite']['name'], 'Widget crash')

        # Array of references
        self.assertEqual([w['name'] for w in joe['items']], ['Widget bang'])

        # References in an array of sub-documents
        self.assertEqual([(mp['number'], mp['item']['name']) for mp in joe['most_purchased']],
                         [(5, 'Widget crash'), (10, 'Widget bang'), (15, 'Widget whollop')])

        # Empty reference
        self.assertIsNone(joe['settings']['featured'])

        # Populated documents got their defaults applied
        self.assertEqual(joe['items'][0]['status'], 'active')

        # Other fields are untouched
        self.assertEqual(joe['name'], 'Joe Random')
        self.assertEqual(joe['_password'], 'ue')

        # Populated references do not count as modifications
        self.assertEqual(joe.is_modified(), [])

    def test_syntax(self):
        """ Test the syntax of $populate """
        db = self.db

        jane = db.get({'$collection': 'users', '$id': 'user-jane', '$populate': 'favourite, items'})
        self.assertEqual(jane['favourite']['name'], 'Widget bang')
        self.assertEqual([w['name'] for w in jane['items']], ['Widget crash', 'Widget whollop'])

        jane = db.get({'$collection': 'users', '$id': 'user-jane', '$populate': {'path': 'favourite'}})
        self.assertEqual(jane['favourite']['name'], 'Widget bang')
        self.assertEqual(jane['items'], ['widget-crash', 'widget-whollop'])

        with self.assertRaises(exc.MalformedDescriptor):
            db.query({'$collection': 'users', '$populate': 1})
        with self.assertRaises(exc.MalformedDescriptor):
            db.query({'$collection': 'users', '$populate': [{'ref': 'widgets'}]})

    def test_many_documents(self):
        """ Test population of a list of documents """
        db = self.db

        users = db.query({'$collection': 'users', '$sort': 'name', '$populate': 'favourite most_purchased.item'})
        self.assertEqual([u['favourite']['name'] for u in users], ['Widget bang', 'Widget crash'])
        self.assertEqual([[mp['item']['name'] for mp in u['most_purchased']] for u in users],
                         [['Widget bang', 'Widget whollop'], ['Widget crash', 'Widget bang', 'Widget whollop']])

        # Documents that refer to the same widget get separate copies
        jane, joe = users
        self.assertEqual(jane['most_purchased'][1]['item'], joe['most_purchased'][2]['item'])
        self.assertIsNot(jane['most_purchased'][1]['item'], joe['most_purchased'][2]['item'])

        # Groups
        groups = db.query({'$collection': 'groups', '$sort': 'name', '$populate': 'users preferences.defaults.items'})
        self.assertEqual([[u['name'] for u in g['users']] for g in groups],
                         [['Jane Quark'], ['Joe Random', 'Jane Quark'], ['Joe Random']])
        self.assertEqual([w['name'] for w in groups[0]['preferences']['defaults']['items']],
                         ['Widget crash', 'Widget bang'])

    def test_batching(self):
        """ Test that every target collection is fetched only once """
        db = self.db

        with DriverCallLogger(db.driver, 'find') as calls:
            db.query({'$collection': 'users',
                      '$populate': ['favourite', 'items', 'most_purchased.item', 'settings.featured']})
        self.assertEqual(calls.collections(), ['users', 'widgets'])

        # Ids are unique
        collection, filter = calls[1]
        ids = filter['_id']['$in']
        self.assertEqual(len(ids), len(set(ids)))
        self.assertEqual(set(ids), {'widget-crash', 'widget-bang', 'widget-whollop'})

        # Nothing to populate: no fetch
        db.save({'$collection': 'users', '$id': 'user-joe', '$refetch': False, 'favourite': None})
        with DriverCallLogger(db.driver, 'find') as calls:
            db.get({'$collection': 'users', '$id': 'user-joe', '$populate': 'favourite'})
        self.assertEqual(calls.collections(), ['users'])

    def test_concurrency(self):
        """ Test that different targets are fetched concurrently """
        db = self.db
        db.schema('things', {'name': str, 'user': {'type': 'pointer', 'ref': 'users'},
                             'widget': {'type': 'pointer', 'ref': 'widgets'}})
        db.create({'$collection': 'things', '_id': 'thing', 'user': 'user-joe', 'widget': 'widget-bang'})

        threads = []
        original_find = db.driver.find

        def find(collection, filter, *args, **kwargs):
            threads.append(threading.current_thread().name)
            return original_find(collection, filter, *args, **kwargs)

        db.driver.find = find
        try:
            thing = db.get({'$collection': 'things', '$id': 'thing', '$populate': 'user widget'})
        finally:
            del db.driver.find

        self.assertEqual(thing['user']['name'], 'Joe Random')
        self.assertEqual(thing['widget']['name'], 'Widget bang')
        self.assertEqual(len(threads), 3)
        self.assertTrue(all(name.startswith('mongodoc-populate') for name in threads[1:]))

        # Sequential, when configured so
        db = models.get_memory_db(dict(populate_max_workers=1))
        db.schema('things', {'user': {'type': 'pointer', 'ref': 'users'},
                             'widget': {'type': 'pointer', 'ref': 'widgets'}})
        db.create({'$collection': 'things', '_id': 'thing', 'user': 'user-joe', 'widget': 'widget-bang'})
        with DriverCallLogger(db.driver, 'find') as calls:
            thing = db.get({'$collection': 'things', '$id': 'thing', '$populate': 'user widget'})
        self.assertEqual(calls.collections(), ['things', 'users', 'widgets'])
        self.assertEqual(thing['widget']['name'], 'Widget bang')

    def test_unresolved(self):
        """ Test references to documents that do not exist """
        db = self.db
        db.delete({'$collection': 'widgets', '$id': 'widget-whollop'})

        joe = db.get({'$collection': 'users', '$id': 'user-joe', '$populate': 'most_purchased.item'})
        self.assertIsNone(joe['most_purchased'][2]['item'])
        self.assertEqual(joe['most_purchased'][2]['number'], 15)
        self.assertEqual(joe['most_purchased'][0]['item']['name'], 'Widget crash')

        jane = db.get({'$collection': 'users', '$id': 'user-jane', '$populate': 'items'})
        self.assertEqual([w and w['name'] for w in jane['items']], ['Widget crash', None])

        # populate_drop_unresolved
        db = models.get_memory_db(dict(populate_drop_unresolved=True))
        db.delete({'$collection': 'widgets', '$id': 'widget-whollop'})
        jane = db.get({'$collection': 'users', '$id': 'user-jane', '$populate': 'items'})
        self.assertEqual([w['name'] for w in jane['items']], ['Widget crash'])

    def test_ref_override(self):
        """ Test {path, ref} """
        db = self.db
        db.schema('archive', {'name': str})
        db.create({'$collection': 'archive', '_id': 'widget-crash', 'name': 'Archived crash'})

        joe = db.get({'$collection': 'users', '$id': 'user-joe',
                      '$populate': [{'path': 'favourite', 'ref': 'archive'}]})
        self.assertEqual(joe['favourite']['name'], 'Archived crash')
        self.assertEqual(joe['favourite'].collection, 'archive')

        # A reference with no target can only be populated with an override
        with self.assertRaises(exc.PopulateError):
            db.query({'$collection': 'users', '$populate': 'most_purchased._id'})

        with self.assertRaises(exc.InvalidCollection):
            db.query({'$collection': 'users', '$populate': [{'path': 'favourite', 'ref': 'nothing'}]})

    def test_errors(self):
        """ Test invalid population paths """
        db = self.db

        # Multi-hop
        with self.assertRaises(exc.PopulateError) as e:
            db.query({'$collection': 'groups', '$populate': 'users.favourite'})
        self.assertEqual(e.exception.path, 'users.favourite')
        self.assertEqual(e.exception.segment, 'favourite')
        self.assertIn('cannot populate through', str(e.exception))

        # Not a reference
        with self.assertRaises(exc.PopulateError) as e:
            db.query({'$collection': 'users', '$populate': 'name'})
        self.assertEqual(e.exception.segment, 'name')

        with self.assertRaises(exc.PopulateError):
            db.query({'$collection': 'users', '$populate': 'settings'})

        # Unknown field
        with self.assertRaises(exc.PopulateError) as e:
            db.query({'$collection': 'users', '$populate': 'settings.nothing'})
        self.assertEqual(e.exception.segment, 'nothing')
        self.assertIn('unknown field', str(e.exception))

        # PopulateError is a MalformedDescriptor
        with self.assertRaises(exc.MalformedDescriptor):
            db.query({'$collection': 'users', '$populate': 'nothing'})

        # An undeclared target collection is only detected on population
        db.schema('things', {'owner': {'type': 'pointer', 'ref': 'owners'}})
        db.create({'$collection': 'things', '_id': 'thing', 'owner': 'someone'})
        self.assertEqual(db.get({'$collection': 'things', '$id': 'thing'})['owner'], 'someone')
        with self.assertRaises(exc.InvalidCollection):
            db.get({'$collection': 'things', '$id': 'thing', '$populate': 'owner'})

    def test_populator(self):
        """ Test Populator and Document.populate() directly """
        db = self.db
        users = db.resolve('users')

        docs = db.query({'$collection': 'users', '$plain': True, '$sort': 'name'})
        db.populator.populate(users, docs, ['favourite', PopulatePath('items')], plain=True)
        self.assertIs(type(docs[0]['favourite']), dict)
        self.assertEqual(docs[0]['favourite']['name'], 'Widget bang')
        self.assertEqual([w['name'] for w in docs[1]['items']], ['Widget bang'])

        # Already populated: kept as is
        db.populator.populate(users, docs, ['favourite'], plain=True)
        self.assertEqual(docs[0]['favourite']['name'], 'Widget bang')

        joe = db.get({'$collection': 'users', '$id': 'user-joe'})
        self.assertIs(joe.populate('favourite', 'most_purchased.item'), joe)
        self.assertEqual(joe['favourite']['name'], 'Widget crash')
        self.assertEqual(joe['most_purchased'][1]['item']['name'], 'Widget bang')
        self.assertEqual(joe.is_modified(), [])


class SqlitePopulateTest(unittest.TestCase):
    """ Test population over SQL """

    def test_queries(self):
        db = models.get_sqlite_db()
        engine = db.driver.engine

        with ExpectedQueryCounter(engine, 2, 'users + widgets'):
            users = db.query({'$collection': 'users', '$sort': 'name',
                              '$populate': ['favourite', 'items', 'most_purchased.item']})
        self.assertEqual([u['favourite']['name'] for u in users], ['Widget bang', 'Widget crash'])

        # Targets are fetched one by one: SQLite in memory is not thread-safe
        db.schema('things', {'user': {'type': 'pointer', 'ref': 'users'},
                             'widget': {'type': 'pointer', 'ref': 'widgets'}})
        db.create({'$collection': 'things', '_id': 'thing', 'user': 'user-joe', 'widget': 'widget-bang',
                   '$refetch': False})
        with ExpectedQueryCounter(engine, 3, 'things + users + widgets'):
            thing = db.get({'$collection': 'things', '$id': 'thing', '$populate': 'user widget'})
        self.assertEqual(thing['user']['name'], 'Joe Random')
        self.assertEqual(thing['widget']['name'], 'Widget bang')
