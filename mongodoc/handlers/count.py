"""
### Count Operation

Return the number of documents, without returning the documents themselves.

```python
db.query({
    '$collection': 'widgets',
    '$count': True,
    'color': 'blue',
})  # -> 2
```
"""

from .base import DocQueryHandlerBase
from ..exc import MalformedDescriptor


class DocCount(DocQueryHandlerBase):
    """ MongoDB-style count query

        Just give it:
        * $count=True
    """

    query_object_section_name = '$count'

    def __init__(self, model, bags):
        super(DocCount, self).__init__(model, bags)

        # On input
        self.count = None

    def input_prepare_query_object(self, query_object):
        # When we count, we don't care about certain things
        if query_object.get('$count', False):
            # Performance: do not sort when counting
            query_object.pop('$sort', None)
            # We don't care about selections either
            query_object.pop('$select', None)
            # Also, remove all skips & limits
            query_object.pop('$skip', None)
            query_object.pop('$limit', None)
            # Population is pointless; but post-population filters still work: see DocFilter
            query_object.pop('$populate', None)
            # A single result makes no sense
            query_object.pop('$one', None)
            # Finally, when we count, we have to remove `max_items` setting from DocLimit.
            # Only DocLimit can do it, and it will do it for us.
            # See: DocLimit.input_prepare_query_object

        return query_object

    def input(self, count=None):
        super(DocCount, self).input(count)
        if not isinstance(count, (int, bool, NoneType)):
            raise MalformedDescriptor('$count must be either true or false. Or at least a 1, or a 0')

        self.count = bool(count)
        return self

    def alter_fetch(self, fetch):
        fetch.count = self.count
        return fetch


NoneType = type(None)
