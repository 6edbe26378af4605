import logging
from collections import OrderedDict

from . import handlers
from .drivers.base import FindOptions
from .drivers.matcher import match
from .exc import MalformedDescriptor, NotFound
from .util.paths import iter_nodes

logger = logging.getLogger(__name__)


class Fetch:
    """ The fetch to make: every handler contributes its part """

    def __init__(self, collection: str):
        self.collection = collection
        #: Conditions for the storage
        self.filter = {}
        #: Conditions to evaluate after population
        self.post_filter = {}
        #: [(path, +1|-1)]
        self.sort = []
        self.skip = None
        self.limit = None
        #: { path: 1|0 } or None
        self.projection = None
        #: [PopulatePath]
        self.populate = []
        #: Return a single document
        self.one = False
        #: Return a count
        self.count = False
        #: Paths loaded only for the post-population filters: removed from the results
        self.strip = []

    @property
    def is_paged_by_storage(self) -> bool:
        """ Can skip & limit be given to the storage?

        Not when some documents are going to be filtered out afterwards.
        """
        return not self.post_filter

    def find_options(self) -> FindOptions:
        paged = self.is_paged_by_storage
        return FindOptions(
            sort=self.sort,
            skip=self.skip if paged else None,
            limit=self.limit if paged else None,
            projection=self.projection,
        )

    def __repr__(self):
        return '<Fetch {}: filter={!r} post_filter={!r} sort={!r} skip={!r} limit={!r}>'.format(
            self.collection, self.filter, self.post_filter, self.sort, self.skip, self.limit)


class DocQuery:
    """ MongoDB-style queries over documents

    A query descriptor is a dict of `$directives` and filter conditions:

    ```python
    DocQuery(db, 'users').query(**{
        '$select': 'name role',
        '$sort': '-role name',
        '$populate': 'favourite',
        '$limit': 10,
        'role': 'admin',
    }).execute()
    ```

    Steps, in order:

    1. The collection is resolved (InvalidCollection), and its foreign keys obtained
    2. The `query` hooks fire; they may modify the descriptor
    3. Filter conditions are split into those for the storage, and those that need population first
    4. The storage is queried: `$id` and `$one` fetch one document, `$count` counts, the rest is a `find()`
    5. References are populated: those in `$populate`, and those that post-population filters look through
    6. Post-population filters are applied
    7. Documents are wrapped into Documents, with modification tracking
    8. The `post_query` hooks fire
    """

    #: Directives handled by DocQuery itself, with defaults
    DIRECTIVES = OrderedDict((
        ('$collection', None),
        ('$id', None),
        ('$one', False),
        ('$data', None),
        ('$err_not_found', True),
        ('$cache_fks', True),
        ('$apply_schema', True),
        ('$dirty', False),
        ('$plain', False),
    ))

    def __init__(self, db, collection: str):
        """ Init a query

        :param db: The database
        :type db: mongodoc.db.Database
        :param collection: Collection name
        :raises InvalidCollection: the collection was never declared
        """
        self.db = db
        self.model = db.resolve(collection)
        self.bags = None

        #: The descriptor, as the hooks have left it
        self.descriptor = None
        #: Directive values
        self.directives = None

    def query(self, **descriptor) -> 'DocQuery':
        """ Build a query from a descriptor

        :raises MalformedDescriptor: unknown directives, or a syntax error in any of them
        :raises PopulateError: invalid population paths
        :raises HookAborted: a `query` hook has failed
        """
        descriptor.setdefault('$collection', self.model.collection)

        # $data: computed once
        if callable(descriptor.get('$data')):
            descriptor['$data'] = descriptor['$data']()

        # Foreign keys
        self.bags = self.model.get_fks(cache=descriptor.get('$cache_fks', True))

        # Hooks may alter the descriptor
        self.model.hooks.fire('query', descriptor)
        self.descriptor = descriptor

        # Handlers
        query_object = dict(descriptor)
        self._init_query_object_handlers()
        for handler_name, handler in self._handlers():
            query_object = handler.input_prepare_query_object(query_object)

        # Our own directives
        self.directives = {name: query_object.pop(name, default)
                           for name, default in self.DIRECTIVES.items()}

        # Check if descriptor keys are all right
        invalid_keys = set(query_object.keys()) - self.HANDLER_SECTION_NAMES
        if invalid_keys:
            raise MalformedDescriptor('Unknown directives: {}'.format(', '.join(sorted(invalid_keys))))

        for handler_name, handler in self._handlers():
            handler.with_docquery(self)

        # Process every directive with its handler
        # Every handler should be invoked because they may have defaults even when no input was provided
        for handler_name, handler in self._handlers():
            input_value = query_object.get(handler.query_object_section_name, None)
            if input_value is not None:
                self.db.settings.raise_if_not_handler_enabled(self.model.collection, handler_name)
            handler.input(input_value)

        # Post-population filters need their references populated
        #: Paths that `$populate` has asked for: they stay in the results
        self.populate_requested = frozenset(self.handler_populate.paths)
        if self.handler_filter.required_populate:
            self.handler_populate.merge(sorted(self.handler_filter.required_populate))
        return self

    def end(self) -> Fetch:
        """ Get the resulting Fetch """
        fetch = Fetch(self.model.collection)
        for handler_name, handler in self._handlers():
            handler.alter_fetch(fetch)
        fetch.one = bool(self.directives['$one']) and not fetch.count
        if fetch.projection and fetch.populate:
            self._project_references(fetch)
        return fetch

    def _project_references(self, fetch: Fetch):
        """ Make sure the projection loads every reference that has to be populated

        Include mode: references are added to the projection. Those that only the post-population filters
        look through are removed from the results afterwards.
        Exclude mode: excluding such a reference is an error.

        :raises MalformedDescriptor: a reference to populate is excluded
        """
        include = self.handler_select.mode == self.handler_select.MODE_INCLUDE
        paths = [path for path, v in fetch.projection.items() if bool(v) == include and path != '_id']

        strip = []
        for p in fetch.populate:
            covered = any(p.path == path or p.path.startswith(path + '.') for path in paths)
            if not include:
                if covered:
                    raise MalformedDescriptor('Cannot populate "{}": it is excluded by $select'.format(p.path))
                continue
            if covered:
                continue

            # Load the whole field, unless some of it is selected already
            root = p.path.split('.')[0]
            load = p.path if any(path.startswith(root + '.') for path in paths) else root
            fetch.projection[load] = 1
            if p.path not in self.populate_requested:
                strip.append(load)

        fetch.strip = [path for path in strip
                       if not any(r == path or r.startswith(path + '.') for r in self.populate_requested)]

    def get_final_descriptor(self) -> dict:
        """ Get the descriptor the way the handlers have understood it

        Directives left at their defaults, and empty handler inputs, are omitted.
        """
        ret = {name: value
               for name, value in self.directives.items()
               if name == '$collection' or value != self.DIRECTIVES[name]}
        for handler_name, handler in self._handlers():
            if not handler.is_input_empty():
                ret[handler.query_object_section_name] = handler.get_final_input_value()
        return ret

    def execute(self):
        """ Run the query

        :return: Document | [Document] | int | None
        :raises NotFound: `$id` or `$one` found nothing (unless `$err_not_found=False`)
        :raises PostHookError: a `post_query` hook has failed
        """
        fetch = self.end()
        logger.debug('Query %r', fetch)
        result = self._execute(fetch)
        self.model.hooks.fire_post('post_query', result, self.descriptor, result)
        return result

    def _execute(self, fetch: Fetch):
        driver = self.db.driver
        collection = fetch.collection

        # Count
        if fetch.count and not fetch.post_filter:
            return driver.count(collection, fetch.filter)

        # Fetch
        if fetch.one and fetch.is_paged_by_storage:
            doc = driver.find_one(collection, fetch.filter, fetch.find_options())
            docs = [doc] if doc is not None else []
        else:
            docs = driver.find(collection, fetch.filter, fetch.find_options())

        # Populate
        if fetch.populate and docs:
            self.db.populator.populate(self.model, docs, fetch.populate,
                                       cache_fks=self.directives['$cache_fks'],
                                       plain=self.directives['$plain'])

        # Post-population filters
        if fetch.post_filter:
            docs = [doc for doc in docs if match(doc, fetch.post_filter)]
            if fetch.count:
                return len(docs)
            if fetch.skip:
                docs = docs[fetch.skip:]
            if fetch.limit is not None:
                docs = docs[:fetch.limit]

        # Fields the caller has not selected
        for doc in docs:
            for path in fetch.strip:
                for node in list(iter_nodes(doc, path)):
                    del node.container[node.key]

        # Wrap
        if not self.directives['$plain']:
            # A partial document cannot have defaults applied
            apply_schema = self.directives['$apply_schema'] and not fetch.projection
            docs = [self.model.document(doc,
                                        dirty=self.directives['$dirty'],
                                        apply_schema=apply_schema)
                    for doc in docs]

        # Single result
        if fetch.one:
            if not docs:
                if self.directives['$err_not_found']:
                    raise NotFound(collection, self.directives['$id'])
                return None
            return docs[0]
        return docs

    # region Query Object handlers

    # This section initializes every directive handler, one per directive.
    # Doing it this way enables you to override the way they are initialized, and use a custom query class with
    # custom settings.

    _QO_HANDLER_SELECT = handlers.DocSelect
    _QO_HANDLER_SORT = handlers.DocSort
    _QO_HANDLER_FILTER = handlers.DocFilter
    _QO_HANDLER_POPULATE = handlers.DocPopulate
    _QO_HANDLER_LIMIT = handlers.DocLimit
    _QO_HANDLER_COUNT = handlers.DocCount

    HANDLER_NAMES = ('count', 'select', 'sort', 'filter', 'populate', 'limit')
    HANDLER_SECTION_NAMES = frozenset(('$count', '$select', '$sort', '$filter', '$populate', '$limit'))

    @classmethod
    def handler_classes(cls) -> OrderedDict:
        """ Get {handler name: handler class} """
        return OrderedDict((name, getattr(cls, '_QO_HANDLER_' + name.upper()))
                           for name in cls.HANDLER_NAMES)

    def _handlers(self):
        """ Get the list of all (handler_name, handler) """
        # Note that the ordering of these handlers matters for input_prepare_query_object():
        # 'count' removes '$skip' and '$limit' before 'limit' packs them together,
        # and 'filter' collects the conditions before the directives are validated.
        return (
            ('count', self.handler_count),
            ('select', self.handler_select),
            ('sort', self.handler_sort),
            ('filter', self.handler_filter),
            ('populate', self.handler_populate),
            ('limit', self.handler_limit),
        )

    # for IDE completion
    handler_select = None  # type: handlers.DocSelect
    handler_sort = None  # type: handlers.DocSort
    handler_filter = None  # type: handlers.DocFilter
    handler_populate = None  # type: handlers.DocPopulate
    handler_limit = None  # type: handlers.DocLimit
    handler_count = None  # type: handlers.DocCount

    def _init_query_object_handlers(self):
        """ Initialize every directive handler """
        for name, handler_cls in self.handler_classes().items():
            setattr(self, 'handler_' + name, self._init_handler(name, handler_cls))

    def _init_handler(self, handler_name, handler_cls):
        """ Init a handler, and load its settings """
        handler_settings = self.db.settings.get_settings(handler_cls)
        return handler_cls(self.model, self.bags, **handler_settings)

    # endregion

    def __repr__(self):
        return 'DocQuery({})'.format(self.model.collection)
