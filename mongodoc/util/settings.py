import inspect
from functools import lru_cache
from typing import Callable, Iterable, Mapping, Tuple

from ..exc import DisabledError


class DatabaseSettingsDict(dict):
    """ Database settings container.

        Is only used for nice autocompletion and documentation purposes: any dict will do.

        Some settings configure the Database itself; the rest are plain kwargs names
        for every handler object's __init__ method, which are fed to subclasses of DocQueryHandlerBase
        by HandlerSettings.

        In addition to that, there are '<handler-name>_enabled' settings,
        that can enable or disable a handler.
    """

    def __init__(self,
                 # --- Database
                 max_depth: int = 32,
                 populate_drop_unresolved: bool = False,
                 populate_max_workers: int = None,
                 remove_all: bool = False,
                 err_blank_update: bool = False,
                 err_no_update: bool = True,
                 refetch: bool = True,
                 # --- select
                 default_exclude: Iterable[str] = None,
                 # --- filter
                 force_filter=None,
                 # --- limit
                 max_items: int = None,
                 # --- enabled handlers?
                 count_enabled: bool = True,
                 filter_enabled: bool = True,
                 limit_enabled: bool = True,
                 populate_enabled: bool = True,
                 select_enabled: bool = True,
                 sort_enabled: bool = True,
                 ):
        """ Database settings

        Example:
            ```python
            from mongodoc import Database, DatabaseSettingsDict
            from mongodoc.drivers import MemoryDriver

            db = Database(MemoryDriver(), DatabaseSettingsDict(
                max_items=100,
                default_exclude=('_password',),
                remove_all=False,
            ))
            ```

        Args:
            max_depth (int): (for: schema)
                Maximum nesting depth of a schema. Deeper schemas fail when their foreign keys are extracted.
            populate_drop_unresolved (bool): (for: populate)
                When a reference array has ids that are not found, drop them.
                By default, they are replaced with `None`, and the array keeps its length.
            populate_max_workers (int): (for: populate)
                The number of threads to fetch referenced documents from different collections with.
                `None` lets the executor decide. `1` disables concurrent fetching.
            remove_all (bool): (for: delete)
                Allow deleting with `$multiple` and an empty filter, which removes every document.
            err_blank_update (bool): (for: save)
                Raise an error when a document is saved with no changes.
            err_no_update (bool): (for: save)
                Raise NotFound when the document to be saved does not exist.
            refetch (bool): (for: create, save)
                Fetch the document after it was written, and return it.
            default_exclude (list[str]): (for: select)
                A list of fields that are excluded from every selection,
                unless they are requested explicitly.
            force_filter (dict | callable): (for: filter)
                A filter that is always applied to every query.
                A callable receives the Model and returns a dict.
            max_items (int): (for: limit)
                The maximum number of documents a single query can return.
                The user can never go higher than that.
            *_enabled (bool): enable or disable a handler.
                A query that uses a disabled handler fails with DisabledError.
        """
        kwargs = {k: v for k, v in locals().items() if k not in ('self', '__class__')}
        super().__init__(**kwargs)


#: Settings that are not handler kwargs
DATABASE_SETTINGS = frozenset((
    'max_depth', 'populate_drop_unresolved', 'populate_max_workers',
    'remove_all', 'err_blank_update', 'err_no_update', 'refetch',
))

#: Defaults for database settings
DATABASE_DEFAULTS = {k: v for k, v in DatabaseSettingsDict().items() if k in DATABASE_SETTINGS}


@lru_cache(100)
def get_function_defaults(for_func: Callable) -> dict:
    """ Get a dict of function's arguments that have default values """
    return {name: param.default
            for name, param in inspect.signature(for_func).parameters.items()
            if param.default is not inspect.Parameter.empty}


def pluck_kwargs_from(dct: Mapping, for_func: Callable, skip: Tuple[str] = ()) -> dict:
    """ Analyze a function, pluck the arguments it needs from a dict """
    defaults = get_function_defaults(for_func)
    return {k: dct.get(k, default)
            for k, default in defaults.items()
            if k not in skip}


class HandlerSettings:
    """ Settings keeper for DocQuery

        Handlers receive settings as kwargs to their __init__() methods, and those kwargs have unique names.
        This class keeps all settings as a single, flat dict, and gives each handler only the settings it wants.
    """

    def __init__(self, settings: Mapping):
        self._settings = settings

    def get(self, name: str):
        """ Get a Database setting """
        return self._settings.get(name, DATABASE_DEFAULTS[name])

    def get_settings(self, handler_cls: type) -> dict:
        """ Get kwargs for a handler's __init__() """
        return pluck_kwargs_from(self._settings, for_func=handler_cls.__init__)

    def is_handler_enabled(self, handler_name: str) -> bool:
        """ Test if the handler is enabled in the configuration """
        return self._settings.get('{}_enabled'.format(handler_name), True)

    def raise_if_not_handler_enabled(self, collection: str, handler_name: str):
        """ Raise an error if the handler is not enabled """
        if not self.is_handler_enabled(handler_name):
            raise DisabledError('Query handler "{}" is disabled for "{}"'
                                .format(handler_name, collection))

    def raise_if_invalid_settings(self, handlers: Mapping[str, type]):
        """ Check whether there were any typos in setting names

            :param handlers: {handler name: handler class}
            :raises: KeyError: Invalid settings provided
        """
        known = set(DATABASE_SETTINGS)
        for name, handler_cls in handlers.items():
            known.add('{}_enabled'.format(name))
            known.update(get_function_defaults(handler_cls.__init__))

        invalid_keys = set(self._settings) - known
        if invalid_keys:
            raise KeyError('Invalid settings were provided: {}'.format(', '.join(sorted(invalid_keys))))

    def __repr__(self):
        return '{}({!r})'.format(self.__class__.__name__, self._settings)
