import unittest
from datetime import datetime

from mongodoc import Database, Schema, FIELD_TYPE
from mongodoc import exc
from mongodoc.drivers import MemoryDriver

from . import models


class SchemaTest(unittest.TestCase):
    """ Test Schema and the schema registry """

    def test_parse(self):
        """ Test field declarations """
        db = models.declare_schemas(Database(MemoryDriver()))
        schema = db.resolve('users').schema

        # Scalars
        self.assertEqual(schema.fields['name'].type, FIELD_TYPE.STRING)
        self.assertEqual(schema.fields['_id'].type, FIELD_TYPE.ID)

        # Full descriptor
        role = schema.fields['role']
        self.assertEqual(role.type, FIELD_TYPE.STRING)
        self.assertEqual(role.enum, ('user', 'admin'))
        self.assertEqual(role.default, 'user')
        self.assertTrue(role.index)

        # Reference
        favourite = schema.fields['favourite']
        self.assertEqual(favourite.type, FIELD_TYPE.REFERENCE)
        self.assertEqual(favourite.ref, 'widgets')

        # Array of references
        items = schema.fields['items']
        self.assertEqual(items.type, FIELD_TYPE.ARRAY)
        self.assertEqual(items.items.type, FIELD_TYPE.REFERENCE)
        self.assertEqual(items.items.ref, 'widgets')

        # Array of sub-documents: gets an `_id`
        mp = schema.fields['most_purchased']
        self.assertTrue(mp.is_subdocument_array)
        self.assertEqual(set(mp.items.fields), {'number', 'item', '_id'})
        self.assertEqual(mp.items.fields['_id'].type, FIELD_TYPE.ID)

        # Sub-document
        settings = schema.fields['settings']
        self.assertEqual(settings.type, FIELD_TYPE.SUBDOCUMENT)
        self.assertEqual(set(settings.fields), {'lang', 'greeting', 'featured'})
        self.assertEqual(settings.fields['lang'].path, 'settings.lang')

        # Type names
        schema = Schema('things', {
            'a': 'string', 'b': 'Number', 'c': 'date', 'd': datetime, 'e': bool, 'f': 'any',
            'g': {'ref': 'things'},
            'type': str,
        })
        self.assertEqual(schema.fields['a'].type, FIELD_TYPE.STRING)
        self.assertEqual(schema.fields['b'].type, FIELD_TYPE.NUMBER)
        self.assertEqual(schema.fields['c'].type, FIELD_TYPE.DATE)
        self.assertEqual(schema.fields['d'].type, FIELD_TYPE.DATE)
        self.assertEqual(schema.fields['e'].type, FIELD_TYPE.BOOLEAN)
        self.assertEqual(schema.fields['f'].type, FIELD_TYPE.ANY)
        self.assertEqual(schema.fields['g'].type, FIELD_TYPE.REFERENCE)
        self.assertEqual(schema.fields['type'].type, FIELD_TYPE.STRING)

    def test_parse_errors(self):
        """ Test invalid declarations """
        # Unknown type
        with self.assertRaises(exc.SchemaError):
            Schema('things', {'a': 'float128'})

        # Invalid descriptor keys
        with self.assertRaises(exc.SchemaError):
            Schema('things', {'a': {'type': str, 'maxlength': 10}})

        # Array with 2 item types
        with self.assertRaises(exc.SchemaError):
            Schema('things', {'a': [str, int]})

        # `ref` on a non-reference
        with self.assertRaises(exc.SchemaError):
            Schema('things', {'a': {'type': str, 'ref': 'widgets'}})

        # Not a dict
        with self.assertRaises(exc.SchemaError):
            Schema('things', ['a'])

    def test_frozen(self):
        """ Test that schemas can't be altered """
        schema = Schema('things', {'a': str})

        with self.assertRaises(exc.SchemaError):
            schema.add('b', str)

        with self.assertRaises(TypeError):
            schema.fields['b'] = schema.fields['a']

    def test_registry(self):
        """ Test Database.schema(), Database.resolve() """
        db = Database(MemoryDriver())
        things = db.schema('things', {'a': str})

        self.assertIs(db.resolve('things'), things)
        self.assertIn('things', db)

        # Duplicate
        with self.assertRaises(exc.DuplicateSchema) as e:
            db.schema('things', {'b': str})
        self.assertIsInstance(e.exception, exc.SchemaError)

        # Unknown
        with self.assertRaises(exc.InvalidCollection) as e:
            db.resolve('nothings')
        self.assertIsInstance(e.exception, exc.NotFoundError)

        # Circular references are fine: targets are checked lazily
        db.schema('a', {'b': {'type': 'pointer', 'ref': 'b'}})
        db.schema('b', {'a': {'type': 'pointer', 'ref': 'a'}})

        # A reference to an undeclared collection is fine, until it's populated
        db.schema('c', {'z': {'type': 'pointer', 'ref': 'z'}})

    def test_get_field(self):
        """ Test Schema.get_field() """
        db = models.declare_schemas(Database(MemoryDriver()))
        schema = db.resolve('users').schema

        self.assertEqual(schema.get_field('name').path, 'name')
        self.assertEqual(schema.get_field('settings.lang').path, 'settings.lang')
        self.assertEqual(schema.get_field('most_purchased.number').path, 'most_purchased.number')
        self.assertEqual(schema.get_field('most_purchased.0.number').path, 'most_purchased.number')
        self.assertIsNone(schema.get_field('nothing'))
        self.assertIsNone(schema.get_field('settings.nothing'))
        self.assertIsNone(schema.get_field('name.first'))

        # walk()
        paths = [path for path, field in schema.walk()]
        self.assertIn('settings.lang', paths)
        self.assertIn('most_purchased.item', paths)
        self.assertIn('most_purchased._id', paths)

    def test_validate(self):
        """ Test Schema.validate() """
        db = models.declare_schemas(Database(MemoryDriver()))
        users = db.resolve('users').schema
        widgets = db.resolve('widgets').schema

        # Ok
        data = users.validate({'name': 'Joe', 'role': 'admin', 'favourite': 'widget-crash'})
        self.assertEqual(data, {'name': 'Joe', 'role': 'admin', 'favourite': 'widget-crash'})

        # A populated reference is stored as its id
        data = users.validate({'favourite': {'_id': 'widget-crash', 'name': 'Widget crash'}})
        self.assertEqual(data, {'favourite': 'widget-crash'})

        # Dates
        data = widgets.validate({'created': '2016-06-23T10:23:42'})
        self.assertEqual(data['created'], datetime(2016, 6, 23, 10, 23, 42))

        # Type errors
        with self.assertRaises(exc.ValidationError) as e:
            users.validate({'name': 123})
        self.assertEqual(e.exception.collection, 'users')
        self.assertEqual(e.exception.path, 'name')

        with self.assertRaises(exc.ValidationError):
            users.validate({'most_purchased': [{'number': 'many'}]})

        with self.assertRaises(exc.ValidationError):
            widgets.validate({'featured': 'yes'})

        with self.assertRaises(exc.ValidationError):
            widgets.validate({'created': 'yesterday'})

        # Enum
        with self.assertRaises(exc.ValidationError) as e:
            widgets.validate({'color': 'orange'})
        self.assertEqual(e.exception.path, 'color')

        with self.assertRaises(exc.ValidationError) as e:
            users.validate({'settings': {'lang': 'ru'}})
        self.assertEqual(e.exception.path, 'settings.lang')

        # Unknown fields
        with self.assertRaises(exc.ValidationError):
            users.validate({'age': 18})

        with self.assertRaises(exc.ValidationError):
            users.validate({'settings': {'age': 18}})

        # Partial: dotted paths
        data = users.validate({'settings.lang': 'fr', 'most_purchased.0.number': 7}, partial=True)
        self.assertEqual(data, {'settings.lang': 'fr', 'most_purchased.0.number': 7})

        with self.assertRaises(exc.ValidationError):
            users.validate({'settings.lang': 'ru'}, partial=True)

        with self.assertRaises(exc.ValidationError):
            users.validate({'settings.age': 18}, partial=True)

    def test_required(self):
        """ Test required fields """
        schema = Schema('things', {'a': {'type': str, 'required': True}, 'b': str})

        self.assertEqual(schema.validate({'a': 'x'}), {'a': 'x'})

        with self.assertRaises(exc.ValidationError):
            schema.validate({'b': 'x'})

        with self.assertRaises(exc.ValidationError):
            schema.validate({'a': None})

        # Partial validation only checks the given fields
        self.assertEqual(schema.validate({'b': 'y'}, partial=True), {'b': 'y'})

    def test_defaults(self):
        """ Test Schema.apply_defaults() """
        db = models.declare_schemas(Database(MemoryDriver()))
        users = db.resolve('users').schema

        data = users.apply_defaults({'name': 'Joe', 'most_purchased': [{'item': 'widget-crash'}]})
        self.assertEqual(data['role'], 'user')
        self.assertEqual(data['settings'], {'lang': 'en', 'greeting': None, 'featured': None})
        self.assertEqual(data['favourite'], None)
        self.assertEqual(data['most_purchased'], [{'item': 'widget-crash', 'number': 0}])
        self.assertNotIn('_id', data)

        # Ids of sub-documents are generated on request
        data = users.apply_defaults({'most_purchased': [{'item': 'widget-crash'}, {'_id': 'x'}]}, generate_ids=True)
        self.assertIsInstance(data['most_purchased'][0]['_id'], str)
        self.assertEqual(data['most_purchased'][1]['_id'], 'x')
        self.assertNotIn('_id', data)

        # Callable defaults are called every time
        widgets = db.resolve('widgets').schema
        self.assertIsInstance(widgets.apply_defaults({})['created'], datetime)

        # Mutable defaults are copied
        schema = Schema('things', {'tags': {'type': 'any', 'default': []}})
        a, b = schema.get_defaults(), schema.get_defaults()
        a['tags'].append(1)
        self.assertEqual(b['tags'], [])
