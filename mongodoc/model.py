import logging
import re
from collections import OrderedDict
from types import MethodType
from typing import Callable, List, NamedTuple, Optional

from .bag import ForeignKeysBag, extract_fks
from .builder import QueryBuilder
from .document import Document
from .hooks import HookRegistry
from .schema import FIELD_TYPE, Field, Schema

logger = logging.getLogger(__name__)


class Virtual(NamedTuple):
    """ A virtual field: computed from, or stored into, other fields """
    getter: Optional[Callable] = None
    setter: Optional[Callable] = None


class Model:
    """ A declared collection: its schema, hooks, and document behavior

    Models are created with `Database.schema()`:

    ```python
    users = db.schema('users', {...})
    users.method('split_names', lambda doc: doc['name'].split())
    users.virtual('password', lambda doc: 'RESTRICTED', set_password)
    users.hook('create', lambda doc: doc.setdefault('role', 'user'))

    users.find({'role': 'admin'}).sort('name').exec()
    ```

    :type db: mongodoc.db.Database
    """

    def __init__(self, db, collection: str, schema: Schema):
        self.db = db
        self.collection = collection
        self.schema = schema

        #: Hooks of this collection; the global ones run first
        self.hooks = HookRegistry(parent=db.hooks)
        #: Document methods: { name: callable(doc, ...) }
        self.methods = {}
        #: Model methods: { name: callable(model, ...) }
        self.statics = {}
        #: Virtual fields: { name: Virtual }
        self.virtuals = OrderedDict()

    def get_fks(self, cache: bool = True) -> ForeignKeysBag:
        """ Get the foreign keys of the schema """
        return extract_fks(self.schema, cache=cache, max_depth=self.db.settings.get('max_depth'))

    # region Declaration

    def hook(self, event: str, fn: Callable = None):
        """ Register a hook. Can be used as a decorator """
        if fn is None:
            def decorator(fn):
                self.hooks.hook(event, fn)
                return fn
            return decorator
        self.hooks.hook(event, fn)
        return self

    def on(self, event: str, fn: Callable = None):
        """ Register a listener. Can be used as a decorator """
        if fn is None:
            def decorator(fn):
                self.hooks.on(event, fn)
                return fn
            return decorator
        self.hooks.on(event, fn)
        return self

    def method(self, name: str, fn: Callable) -> 'Model':
        """ Add a method to every document of this collection. It receives the document as `self` """
        self.methods[name] = fn
        return self

    def static(self, name: str, fn: Callable) -> 'Model':
        """ Add a method to the model itself. It receives the model as `self` """
        self.statics[name] = fn
        return self

    def virtual(self, name: str, getter: Callable = None, setter: Callable = None) -> 'Model':
        """ Add a virtual field

        :param getter: callable(doc) -> value
        :param setter: callable(doc, value)
        """
        self.virtuals[name] = Virtual(getter, setter)
        return self

    def use(self, plugin: Callable, **options) -> 'Model':
        """ Apply a plugin: callable(model, **options) """
        plugin(self, **options)
        return self

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        static = self.__dict__.get('statics', {}).get(name)
        if static is None:
            raise AttributeError('Model {!r} has no static {!r}'.format(self.collection, name))
        return MethodType(static, self)

    # endregion

    # region Querying

    def query(self) -> QueryBuilder:
        """ Start a chainable query """
        return QueryBuilder(self.db, self.collection)

    def find(self, filter: dict = None, **fields) -> QueryBuilder:
        """ Find documents """
        return self.query().find(filter, **fields)

    def find_one(self, filter: dict = None, **fields) -> Optional[Document]:
        """ Find a single document, or None """
        return self.query().find(filter, **fields).one().optional().exec()

    def find_one_by_id(self, id: str) -> Optional[Document]:
        """ Get a document by id, or None """
        return self.db.get({'$collection': self.collection, '$id': id, '$err_not_found': False})

    def count(self, filter: dict = None, **fields) -> int:
        return self.query().find(filter, **fields).count().exec()

    # endregion

    # region Mutation

    def create(self, data: dict) -> Document:
        """ Create a document """
        return self.db.create(dict(data, **{'$collection': self.collection}))

    def update(self, filter: dict, patch: dict) -> int:
        """ Update every document that matches the filter; return their number """
        return self.db.update(dict(filter or {}, **{'$collection': self.collection}), patch)

    def remove(self, filter: dict = None) -> int:
        """ Remove every document that matches the filter; return their number """
        return self.db.delete(dict(filter or {}, **{'$collection': self.collection, '$multiple': True}))

    # endregion

    def document(self, data: dict, dirty: bool = False, apply_schema: bool = True) -> Document:
        """ Wrap fetched data into a Document

        :param dirty: Consider every field modified
        :param apply_schema: Fill in the missing fields with their defaults
        """
        if apply_schema:
            self.schema.apply_defaults(data)
        doc = Document(self, data, dirty=dirty)
        self.hooks.fire('document_create', doc)
        return doc

    # region Introspection

    def meta(self, prototype: bool = False, filter_private: bool = True,
             collection_enums: bool = False, indexes: bool = False) -> dict:
        """ Describe the fields of the schema

        :param prototype: Add '$prototype': a document with every default value
        :param filter_private: Hide fields that begin with '_' (except for `_id`)
        :param collection_enums: Give enums as [{id, title}]
        :param indexes: Include the `index` flag
        :return: { dotted path: {type, default, enum, ref, index} }
        """
        meta = OrderedDict()
        arrays = []
        for path, field in self.schema.walk():
            # Fields of array items are described by their array
            if any(path.startswith(array + '.') for array in arrays):
                continue
            if field.is_array:
                arrays.append(path)
            if field.type == FIELD_TYPE.SUBDOCUMENT:
                continue
            if filter_private and _is_private(path):
                continue
            meta[path] = _describe_field(field, collection_enums, indexes)

        if prototype:
            meta['$prototype'] = _prototype(self.schema.fields)
        return meta

    def get_schema_indexes(self) -> List[str]:
        """ Get the paths of the fields declared with `index` """
        return [path for path, field in self.schema.walk() if field.index]

    # endregion

    def __repr__(self):
        return '<Model {}>'.format(self.collection)


def _is_private(path: str) -> bool:
    return any(key.startswith('_') and key != '_id' for key in path.split('.'))


def _describe_field(field: Field, collection_enums: bool, indexes: bool) -> dict:
    info = {'type': field.type.value}
    if field.has_default and not callable(field.default):
        info['default'] = field.default
    if field.enum is not None:
        info['enum'] = [{'id': v, 'title': _title(v)} for v in field.enum] if collection_enums else list(field.enum)
    if field.ref is not None:
        info['ref'] = field.ref
    if indexes:
        info['index'] = bool(field.index)
    return info


def _prototype(fields) -> dict:
    """ The static defaults of a group of fields """
    prototype = {}
    for name, field in fields.items():
        if field.type == FIELD_TYPE.SUBDOCUMENT:
            nested = _prototype(field.fields)
            if nested:
                prototype[name] = nested
        elif field.has_default and not callable(field.default):
            prototype[name] = field.get_default()
    return prototype


def _title(value) -> str:
    """ 'elmer_fudd', 'elmerFudd' -> 'Elmer Fudd' """
    words = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', str(value)).replace('_', ' ').split()
    return ' '.join(word.capitalize() for word in words)
