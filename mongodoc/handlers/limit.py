"""
### Slice Operation

The slice operation consists of two optional directives:

* `$limit` would limit the number of documents returned
* `$skip` would shift the "window" a number of documents

Together, these two implement pagination.

```python
db.query({
    '$collection': 'users',
    '$limit': 100,  # 100 items per page
    '$skip': 200,  # skip 200 items, meaning, we're on the third page
})
```

Values: can be a number, or a `None`.
"""

from .base import DocQueryHandlerBase
from ..exc import MalformedDescriptor


class DocLimit(DocQueryHandlerBase):
    """ MongoDB-style limits and offsets

        Handles two keys:
        * '$limit': None, or int
        * '$skip': None, or int
    """

    query_object_section_name = '$limit'

    def __init__(self, model, bags, max_items=None):
        """ Init a limit

        :param model: Model to work with
        :param bags: Foreign keys
        :param max_items: The maximum number of documents that can be loaded with this query.
            The user can never go any higher than that, and this value is forced onto every query.
        """
        super(DocLimit, self).__init__(model, bags)

        # Config
        self.max_items = max_items
        assert self.max_items is None or self.max_items > 0

        # On input
        self.skip = None
        self.limit = None

    def input_prepare_query_object(self, query_object):
        """ Alter the descriptor

        Unlike other handlers, this one receives 2 values: '$skip' and '$limit'.
        DocQuery only supports one key per handler.
        Solution: pack them as a tuple
        """
        if '$skip' in query_object or '$limit' in query_object:
            query_object['$limit'] = (query_object.pop('$skip', None),
                                      query_object.pop('$limit', None))
            if query_object['$limit'] == (None, None):
                query_object.pop('$limit')  # remove it if it's actually empty

        # When there is a '$count', we have to disable self.max_items
        # We can safely just alter ourselves, because every DocQuery has its own handlers
        if query_object.get('$count', False):
            self.max_items = None

        return query_object

    def input(self, skip=None, limit=None):
        # DocQuery actually gives us a tuple (skip, limit)
        if isinstance(skip, tuple):
            skip, limit = skip

        super(DocLimit, self).input((skip, limit))

        # Validate
        if not isinstance(skip, (int, NoneType)) or isinstance(skip, bool):
            raise MalformedDescriptor('$skip must be either an integer, or null')
        if not isinstance(limit, (int, NoneType)) or isinstance(limit, bool):
            raise MalformedDescriptor('$limit must be either an integer, or null')

        # Clamp
        skip = None if skip is None or skip <= 0 else skip
        limit = None if limit is None or limit <= 0 else limit

        # Max limit
        if self.max_items:
            limit = min(self.max_items, limit or self.max_items)

        self.skip = skip
        self.limit = limit
        return self

    @property
    def has_limit(self):
        """ Check whether there's a limit on this handler """
        return self.limit is not None or self.skip is not None

    def is_input_empty(self):
        return not self.has_limit

    def alter_fetch(self, fetch):
        """ Apply skip and limit to the fetch """
        if not self.input_received and self.max_items:
            fetch.limit = self.max_items
            return fetch
        fetch.skip = self.skip
        fetch.limit = self.limit
        return fetch

    def get_final_input_value(self):
        return dict(skip=self.skip, limit=self.limit)


NoneType = type(None)
