""" Schema declaration: a declarative table of field descriptors

A schema is declared with a dict that maps field names to specifications:

```python
db.schema('users', {
    'name': str,
    'role': {'type': str, 'enum': ['user', 'admin'], 'default': 'user', 'index': True},
    'favourite': {'type': 'pointer', 'ref': 'widgets'},
    'items': [{'type': 'pointer', 'ref': 'widgets'}],
    'most_purchased': [
        {
            'number': {'type': int, 'default': 0},
            'item': {'type': 'pointer', 'ref': 'widgets'},
        }
    ],
    'settings': {
        'lang': {'type': str, 'enum': ['en', 'es', 'fr'], 'default': 'en'},
        'featured': {'type': 'pointer', 'ref': 'widgets'},
    },
})
```

Field specifications:

* A type object or type name (`str`, `'string'`, `int`, `'number'`, `datetime`, `'pointer'`, ...)
* A dict with a `type` key: a full field descriptor (`type`, `default`, `enum`, `index`, `ref`, `required`)
* A dict without a `type` key: a nested group of fields (a sub-document)
* A one-element list: an array of the element

Every entry of an array of sub-documents gets its own `_id`.
"""

import uuid
from copy import deepcopy
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple

from .exc import SchemaError, ValidationError


class FIELD_TYPE(Enum):
    """ Field types """
    STRING = 'string'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    DATE = 'date'
    ID = 'id'
    REFERENCE = 'reference'
    ARRAY = 'array'
    SUBDOCUMENT = 'subdocument'
    ANY = 'any'


# Type names and type objects accepted in a schema declaration
_TYPE_ALIASES = {
    str: FIELD_TYPE.STRING,
    'string': FIELD_TYPE.STRING,
    int: FIELD_TYPE.NUMBER,
    float: FIELD_TYPE.NUMBER,
    'number': FIELD_TYPE.NUMBER,
    bool: FIELD_TYPE.BOOLEAN,
    'bool': FIELD_TYPE.BOOLEAN,
    'boolean': FIELD_TYPE.BOOLEAN,
    datetime: FIELD_TYPE.DATE,
    date: FIELD_TYPE.DATE,
    'date': FIELD_TYPE.DATE,
    'id': FIELD_TYPE.ID,
    'pointer': FIELD_TYPE.REFERENCE,
    'reference': FIELD_TYPE.REFERENCE,
    'ref': FIELD_TYPE.REFERENCE,
    'objectid': FIELD_TYPE.REFERENCE,
    'oid': FIELD_TYPE.REFERENCE,
    dict: FIELD_TYPE.ANY,
    'object': FIELD_TYPE.ANY,
    'mixed': FIELD_TYPE.ANY,
    'any': FIELD_TYPE.ANY,
    list: FIELD_TYPE.ARRAY,
    'array': FIELD_TYPE.ARRAY,
}

#: Keys of a full field descriptor
_DESCRIPTOR_KEYS = frozenset(('type', 'default', 'enum', 'index', 'ref', 'required'))

#: Marker for "no default value"
NO_DEFAULT = object()


def generate_id() -> str:
    """ Generate a new document id """
    return uuid.uuid4().hex


class Field:
    """ A declared field

    Composite fields carry their children: an ARRAY has `items` (the Field of every element),
    a SUBDOCUMENT has `fields` (a mapping of its own Fields).
    """

    def __init__(self, path: str, type: FIELD_TYPE,
                 default=NO_DEFAULT, enum=None, index=False, ref: str = None, required=False,
                 items: 'Field' = None, fields: Mapping[str, 'Field'] = None):
        #: Full dotted path, without list indexes
        self.path = path
        #: Own name
        self.name = path.rsplit('.', 1)[-1]
        self.type = type
        self.default = default
        self.enum = tuple(enum) if enum is not None else None
        self.index = index
        #: Reference target collection
        self.ref = ref
        self.required = required
        self.items = items
        self.fields = MappingProxyType(dict(fields)) if fields is not None else None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    def get_default(self):
        """ Get the default value: calls it if callable """
        if callable(self.default):
            return self.default()
        return deepcopy(self.default)

    @property
    def is_array(self) -> bool:
        return self.type == FIELD_TYPE.ARRAY

    @property
    def is_subdocument_array(self) -> bool:
        return self.is_array and self.items.type == FIELD_TYPE.SUBDOCUMENT

    def __repr__(self):
        return '<Field {}: {}>'.format(self.path, self.type.value)


# region Declaration parsing

def _is_type_spec(value) -> bool:
    """ Is `value` something a field type can be read from? """
    if isinstance(value, list):
        return True
    if isinstance(value, str):
        value = value.lower()
    try:
        return value in _TYPE_ALIASES
    except TypeError:  # unhashable
        return False


def parse_field(collection: str, path: str, spec) -> Field:
    """ Parse a field specification into a Field """
    # Array: [spec]
    if isinstance(spec, list):
        if len(spec) > 1:
            raise SchemaError(collection, 'array field "{}" must declare exactly one item type'.format(path))
        items = parse_field(collection, path, spec[0] if spec else 'any')
        if items.type == FIELD_TYPE.SUBDOCUMENT and '_id' not in items.fields:
            fields = dict(items.fields)
            fields['_id'] = Field(path + '._id', FIELD_TYPE.ID, default=generate_id)
            items = Field(path, FIELD_TYPE.SUBDOCUMENT, fields=fields)
        return Field(path, FIELD_TYPE.ARRAY, items=items)

    # Type: str, 'string', ...
    if not isinstance(spec, dict):
        if isinstance(spec, str):
            spec = spec.lower()
        try:
            type = _TYPE_ALIASES[spec]
        except (KeyError, TypeError):
            raise SchemaError(collection, 'unknown type for field "{}": {!r}'.format(path, spec))
        if type == FIELD_TYPE.ARRAY:
            return Field(path, type, items=Field(path, FIELD_TYPE.ANY))
        return Field(path, type)

    # Field descriptor: {type: ..., default: ...}
    if ('type' in spec and _is_type_spec(spec['type'])) or ('ref' in spec and 'type' not in spec):
        invalid_keys = set(spec) - _DESCRIPTOR_KEYS
        if invalid_keys:
            raise SchemaError(collection, 'invalid keys for field "{}": {}'.format(path, ', '.join(sorted(invalid_keys))))

        field = parse_field(collection, path, spec.get('type', 'pointer'))
        if spec.get('ref') and field.type not in (FIELD_TYPE.REFERENCE, FIELD_TYPE.ID):
            raise SchemaError(collection, 'field "{}" has a `ref`, but is not a reference'.format(path))

        field.default = spec.get('default', NO_DEFAULT)
        field.enum = tuple(spec['enum']) if spec.get('enum') is not None else None
        field.index = spec.get('index', False)
        field.ref = spec.get('ref')
        field.required = spec.get('required', False)
        return field

    # Nested group: {name: spec, ...}
    fields = {
        name: parse_field(collection, path + '.' + name if path else name, sub_spec)
        for name, sub_spec in spec.items()
    }
    return Field(path, FIELD_TYPE.SUBDOCUMENT, fields=fields)

# endregion


class Schema:
    """ The field table of a collection

    Fields are fixed at declaration time: the schema cannot be altered afterwards.
    """

    def __init__(self, collection: str, spec: dict):
        if not isinstance(spec, dict):
            raise SchemaError(collection, 'schema specification must be a dict')

        self.collection = collection
        fields = {name: parse_field(collection, name, field_spec)
                  for name, field_spec in spec.items()}
        fields.setdefault('_id', Field('_id', FIELD_TYPE.ID))

        #: Top-level fields: { name: Field }
        self.fields = MappingProxyType(fields)

        #: Memoized foreign keys map (see `bag.extract_fks()`)
        self._fks = None

    def add(self, name: str, spec):
        """ Schemas cannot be extended after declaration """
        raise SchemaError(self.collection, 'cannot add field "{}" after declaration'.format(name))

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __repr__(self):
        return '<Schema {}: {}>'.format(self.collection, ', '.join(self.fields))

    def walk(self) -> Iterator[Tuple[str, Field]]:
        """ Iterate over every field, nested fields included: (path, field) """
        stack = list(reversed(list(self.fields.values())))
        while stack:
            field = stack.pop()
            yield field.path, field
            children = field.items.fields if field.is_subdocument_array else field.fields
            if children:
                stack.extend(reversed(list(children.values())))

    def get_field(self, path: str) -> Optional[Field]:
        """ Get a field by a dotted path. List indexes are skipped.

        Example: get_field('most_purchased.0.number')
        """
        fields = self.fields
        field = None
        for key in path.split('.'):
            if field is not None and field.is_array and key.isdigit():
                field = field.items
                fields = field.fields
                continue
            if fields is None or key not in fields:
                return None
            field = fields[key]
            fields = field.items.fields if field.is_subdocument_array else field.fields
        return field

    # region Validation

    def validate(self, data: dict, partial: bool = False) -> dict:
        """ Validate a document against the schema, and return a coerced copy

        :param data: The document, or, with `partial`, a {dotted path: value} patch
        :param partial: Validate a patch: only check the given fields, and accept dotted paths
        :raises ValidationError: invalid value, or unknown field
        """
        result = {}
        for key, value in data.items():
            field = self.get_field(key) if partial else self.fields.get(key)
            if field is None:
                raise ValidationError(self.collection, key, 'unknown field')
            result[key] = self._coerce(field, key, value)

        if not partial:
            for name, field in self.fields.items():
                if field.required and result.get(name) is None:
                    raise ValidationError(self.collection, name, 'required')
        return result

    def _coerce(self, field: Field, path: str, value) -> Any:
        """ Check a value against a field; return the value in its stored form """
        if value is None:
            if field.required:
                raise ValidationError(self.collection, path, 'required')
            return None

        t = field.type
        if t == FIELD_TYPE.STRING:
            if not isinstance(value, str):
                raise ValidationError(self.collection, path, 'expected a string, got {!r}'.format(value))
        elif t == FIELD_TYPE.NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(self.collection, path, 'expected a number, got {!r}'.format(value))
        elif t == FIELD_TYPE.BOOLEAN:
            if not isinstance(value, bool):
                raise ValidationError(self.collection, path, 'expected a boolean, got {!r}'.format(value))
        elif t == FIELD_TYPE.DATE:
            value = _coerce_date(self.collection, path, value)
        elif t in (FIELD_TYPE.REFERENCE, FIELD_TYPE.ID):
            # A populated document is stored as its id
            if isinstance(value, dict):
                value = value.get('_id')
            if not isinstance(value, str):
                raise ValidationError(self.collection, path, 'expected an id, got {!r}'.format(value))
        elif t == FIELD_TYPE.ARRAY:
            if not isinstance(value, (list, tuple)):
                raise ValidationError(self.collection, path, 'expected an array, got {!r}'.format(value))
            return [self._coerce(field.items, '{}.{}'.format(path, i), item)
                    for i, item in enumerate(value)]
        elif t == FIELD_TYPE.SUBDOCUMENT:
            if not isinstance(value, dict):
                raise ValidationError(self.collection, path, 'expected an object, got {!r}'.format(value))
            result = {}
            for key, sub_value in value.items():
                if key not in field.fields:
                    raise ValidationError(self.collection, path + '.' + key, 'unknown field')
                result[key] = self._coerce(field.fields[key], path + '.' + key, sub_value)
            return result

        if field.enum is not None and value not in field.enum:
            raise ValidationError(self.collection, path, '{!r} is not one of {!r}'.format(value, list(field.enum)))
        return value

    # endregion

    # region Defaults

    def apply_defaults(self, data: dict, generate_ids: bool = False) -> dict:
        """ Fill in the missing fields with their defaults (or None), in place

        :param generate_ids: Also give an `_id` to every sub-document array entry that lacks one
        """
        # (fields, target dict)
        worklist = [(self.fields, data)]
        while worklist:
            fields, target = worklist.pop()
            for name, field in fields.items():
                if name == '_id' and fields is self.fields:
                    continue
                if name not in target:
                    if field.type == FIELD_TYPE.SUBDOCUMENT and not field.has_default:
                        target[name] = {}
                    elif field.type == FIELD_TYPE.ID and not generate_ids:
                        continue
                    else:
                        target[name] = field.get_default() if field.has_default else None

                value = target[name]
                if field.type == FIELD_TYPE.SUBDOCUMENT and isinstance(value, dict):
                    worklist.append((field.fields, value))
                elif field.is_subdocument_array and isinstance(value, list):
                    worklist.extend((field.items.fields, entry) for entry in value if isinstance(entry, dict))
        return data

    def get_defaults(self) -> dict:
        """ A prototype document: every field with its default value """
        return self.apply_defaults({})

    # endregion


def _coerce_date(collection: str, path: str, value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(collection, path, 'expected a date, got {!r}'.format(value))
