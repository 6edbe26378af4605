"""
### Query Iterator

A pipeline of steps over the documents a query returns:

```python
names = users.find({'role': 'user'}) \\
    .filter(lambda doc: doc['name'].startswith('J')) \\
    .map(lambda doc: doc['name']) \\
    .exec()
```

Steps run in the order they were added, one document at a time:

* `for_each(fn)`: call `fn(doc)`, keep the document (it may be modified in place)
* `map(fn)`: replace the document with `fn(doc)`
* `filter(fn)`: keep the document only if `fn(doc)` is truthy

With `chunk_size`, documents are fetched in pages of that size,
and the next page is only loaded when the previous one is exhausted.
Paging needs a stable order: when the query has no `$sort`, documents are sorted by `_id`.
"""

from typing import Callable, Iterable, Iterator, List

from .exc import MalformedDescriptor


class QueryIterator:
    """ Steps over query results, or over any data

    :param builder: The query to iterate over
    :type builder: mongodoc.builder.QueryBuilder
    :param data: Iterate over these items instead
    :param chunk_size: Fetch documents in pages of this size
    """

    def __init__(self, builder=None, data: Iterable = None, chunk_size: int = None):
        if builder is None and data is None:
            raise ValueError('QueryIterator needs either a query, or data')
        self.builder = builder
        self.data = data
        self.chunk_size = chunk_size

        #: [(step, fn)]
        self.steps = []

    def for_each(self, fn: Callable) -> 'QueryIterator':
        self.steps.append((_for_each, fn))
        return self

    def map(self, fn: Callable) -> 'QueryIterator':
        self.steps.append((map, fn))
        return self

    def filter(self, fn: Callable) -> 'QueryIterator':
        self.steps.append((filter, fn))
        return self

    def exec(self) -> List:
        """ Run every step over every item; return the list of results """
        return list(self)

    def __iter__(self) -> Iterator:
        items = self._source()
        for step, fn in self.steps:
            items = step(fn, items)
        return iter(items)

    def _source(self) -> Iterator:
        if self.data is not None:
            yield from self.data
            return

        descriptor = dict(self.builder.descriptor)
        if descriptor.get('$count') or descriptor.get('$one'):
            raise MalformedDescriptor('Cannot iterate over a $count or a $one query')

        db = self.builder.db
        if not self.chunk_size:
            yield from db.query(descriptor)
            return

        # Pages
        if not descriptor.get('$sort'):
            descriptor['$sort'] = ['_id']
        skip = descriptor.get('$skip') or 0
        left = descriptor.get('$limit')
        while left is None or left > 0:
            size = self.chunk_size if left is None else min(self.chunk_size, left)
            page = db.query(dict(descriptor, **{'$skip': skip, '$limit': size}))
            yield from page
            if len(page) < size:
                return
            skip += size
            if left is not None:
                left -= size

    def __repr__(self):
        return 'QueryIterator({!r}, steps={})'.format(
            self.builder if self.builder is not None else self.data,
            len(self.steps))


def _for_each(fn: Callable, items: Iterable) -> Iterator:
    for item in items:
        fn(item)
        yield item
