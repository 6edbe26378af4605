import logging
from collections import OrderedDict
from typing import Callable, Mapping, Optional, Union

from .crud import CrudHelper
from .document import Document
from .drivers.base import StorageDriver
from .exc import DuplicateSchema, InvalidCollection, MalformedDescriptor
from .hooks import HookRegistry
from .model import Model
from .populate import Populator
from .query import DocQuery
from .schema import Schema
from .util.settings import HandlerSettings

logger = logging.getLogger(__name__)


class Database:
    """ The registry of collections, over a storage driver

    An application creates it once:

    ```python
    from mongodoc import Database
    from mongodoc.drivers import MemoryDriver

    db = Database(MemoryDriver(), dict(max_items=100))

    users = db.schema('users', {'name': str, 'favourite': {'type': 'pointer', 'ref': 'widgets'}})
    widgets = db.schema('widgets', {'name': str, 'color': str})

    db.query({'$collection': 'users', '$populate': 'favourite', 'favourite.color': 'blue'})
    ```

    Events fired at this level:

    * `model_create` (model): a collection was declared
    * `document_create` (document): a Document was created from fetched data

    Global hooks, registered with `Database.hook()`, run before the hooks of every model.
    """

    # The class to use for queries
    _DOCQUERY_CLS = DocQuery
    # The class to use for mutations
    _CRUDHELPER_CLS = CrudHelper
    # The class to use for population
    _POPULATOR_CLS = Populator

    def __init__(self, driver: StorageDriver, settings: Mapping = None):
        """ Init a database

        :param driver: The storage
        :param settings: Settings; see DatabaseSettingsDict
        :raises KeyError: invalid settings
        """
        self.driver = driver

        #: Settings
        self.settings = HandlerSettings(settings or {})
        self.settings.raise_if_invalid_settings(self._DOCQUERY_CLS.handler_classes())

        #: Global hooks
        self.hooks = HookRegistry()
        #: Declared collections: { name: Model }
        self.models = OrderedDict()

        self.populator = self._POPULATOR_CLS(self)
        self.crud = self._CRUDHELPER_CLS(self)

        # Applied plugins
        self._plugins = []

    # region Schema Registry

    def schema(self, name: str, spec: dict) -> Model:
        """ Declare a collection

        :raises DuplicateSchema: the name is taken
        :raises SchemaError: invalid declaration
        """
        if name in self.models:
            raise DuplicateSchema(name)
        model = Model(self, name, Schema(name, spec))
        self.models[name] = model
        logger.debug('Declared collection "%s"', name)

        self.hooks.fire('model_create', model)
        return model

    def resolve(self, name: str) -> Model:
        """ Get a declared collection

        :raises InvalidCollection: unknown collection
        """
        try:
            return self.models[name]
        except KeyError:
            raise InvalidCollection(name)

    model = resolve

    def __contains__(self, name: str) -> bool:
        return name in self.models

    # endregion

    # region Hooks & plugins

    def hook(self, event: str, fn: Callable = None):
        """ Register a global hook: it runs for every collection. Can be used as a decorator """
        if fn is None:
            def decorator(fn):
                self.hooks.hook(event, fn)
                return fn
            return decorator
        self.hooks.hook(event, fn)
        return self

    def on(self, event: str, fn: Callable = None):
        """ Register a global listener. Can be used as a decorator """
        if fn is None:
            def decorator(fn):
                self.hooks.on(event, fn)
                return fn
            return decorator
        self.hooks.on(event, fn)
        return self

    def use(self, plugin: Callable, **options) -> 'Database':
        """ Apply a plugin: callable(db, **options)

        A plugin is only applied once
        """
        if plugin in self._plugins:
            return self
        self._plugins.append(plugin)
        plugin(self, **options)
        return self

    # endregion

    # region Querying

    def query(self, descriptor: Mapping = None, **kwargs) -> Union[Document, list, int, None]:
        """ Run a query

        :param descriptor: The query descriptor: {$collection, $select, ..., filter fields}
        :raises InvalidCollection: unknown collection
        :raises MalformedDescriptor: invalid descriptor
        :raises NotFound: `$id` or `$one` found nothing
        """
        descriptor = dict(descriptor or {}, **kwargs)
        collection = descriptor.get('$collection')
        if not collection:
            raise MalformedDescriptor('$collection is required')
        return self._DOCQUERY_CLS(self, collection).query(**descriptor).execute()

    def get(self, descriptor: Mapping = None, **kwargs) -> Optional[Document]:
        """ Get a single document """
        return self.query(dict(descriptor or {}, **kwargs), **{'$one': True})

    def count(self, descriptor: Mapping = None, **kwargs) -> int:
        """ Count documents """
        return self.query(dict(descriptor or {}, **kwargs), **{'$count': True})

    def meta(self, descriptor: Mapping) -> dict:
        """ Describe the fields of a collection

        :param descriptor: {$collection, $prototype, $filter_private, $collection_enums, $indexes}
        """
        model = self.resolve(descriptor.get('$collection'))
        return model.meta(prototype=descriptor.get('$prototype', False),
                          filter_private=descriptor.get('$filter_private', True),
                          collection_enums=descriptor.get('$collection_enums', False),
                          indexes=descriptor.get('$indexes', False))

    # endregion

    # region Mutation

    def create(self, descriptor: Mapping) -> Document:
        """ Create a document. See CrudHelper.create() """
        return self.crud.create(descriptor)

    def save(self, descriptor: Mapping) -> Optional[Document]:
        """ Save a document by `$id`. See CrudHelper.save() """
        return self.crud.save(descriptor)

    def update(self, descriptor: Mapping, patch: Mapping) -> int:
        """ Update documents by a filter. See CrudHelper.update() """
        return self.crud.update(descriptor, patch)

    def delete(self, descriptor: Mapping) -> int:
        """ Delete documents. See CrudHelper.delete() """
        return self.crud.delete(descriptor)

    remove = delete

    # endregion

    def __repr__(self):
        return '<Database {!r}: {}>'.format(self.driver, ', '.join(self.models))
