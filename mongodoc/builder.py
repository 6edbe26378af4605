"""
### Query Builder

A chainable way to build query descriptors:

```python
users.find({'role': 'user'}) \\
    .select('name', 'favourite') \\
    .sort('-name') \\
    .populate('favourite') \\
    .limit(10) \\
    .exec()
```

Every chain method modifies the builder and returns it.
Nothing is queried until exec() is called.

Iterators run steps over the results; see `mongodoc.iterator`:

```python
users.find().map(lambda doc: doc['name']).exec()
```
"""

from typing import Union

from .document import Document
from .iterator import QueryIterator


class QueryBuilder:
    """ Chainable query descriptor builder

    :type db: mongodoc.db.Database
    """

    def __init__(self, db, collection: str):
        self.db = db
        #: The descriptor being built
        self.descriptor = {'$collection': collection}

    def find(self, filter: dict = None, **fields) -> 'QueryBuilder':
        """ Add filter conditions """
        self.descriptor.update(filter or {})
        self.descriptor.update(fields)
        return self

    def select(self, *fields) -> 'QueryBuilder':
        """ Add fields to select. '-field' excludes """
        return self._extend('$select', fields)

    def sort(self, *fields) -> 'QueryBuilder':
        """ Add fields to sort by. '-field' sorts descending """
        return self._extend('$sort', fields)

    def populate(self, *paths) -> 'QueryBuilder':
        """ Add reference paths to populate. Also accepts {path, ref} objects """
        return self._extend('$populate', paths)

    def limit(self, limit: int) -> 'QueryBuilder':
        self.descriptor['$limit'] = limit
        return self

    def skip(self, skip: int) -> 'QueryBuilder':
        self.descriptor['$skip'] = skip
        return self

    def one(self, one: bool = True) -> 'QueryBuilder':
        """ Return a single document """
        self.descriptor['$one'] = one
        return self

    def count(self, count: bool = True) -> 'QueryBuilder':
        """ Return the number of documents """
        self.descriptor['$count'] = count
        return self

    def optional(self, optional: bool = True) -> 'QueryBuilder':
        """ With one(): return None instead of raising NotFound """
        self.descriptor['$err_not_found'] = not optional
        return self

    def plain(self, plain: bool = True) -> 'QueryBuilder':
        """ Return plain dicts """
        self.descriptor['$plain'] = plain
        return self

    def dirty(self, dirty: bool = True) -> 'QueryBuilder':
        """ Return documents with every field marked as modified """
        self.descriptor['$dirty'] = dirty
        return self

    def data(self, data) -> 'QueryBuilder':
        """ Context data for the hooks. A callable is called once, when the query is executed """
        self.descriptor['$data'] = data
        return self

    def exec(self) -> Union[Document, list, int, None]:
        """ Run the query """
        return self.db.query(dict(self.descriptor))

    def iterator(self, chunk_size: int = None) -> QueryIterator:
        """ Iterate over the results with for_each(), map(), filter() steps

        :param chunk_size: Fetch documents in pages of this size
        """
        return QueryIterator(self, chunk_size=chunk_size)

    def for_each(self, fn) -> QueryIterator:
        return self.iterator().for_each(fn)

    def map(self, fn) -> QueryIterator:
        return self.iterator().map(fn)

    def filter(self, fn) -> QueryIterator:
        return self.iterator().filter(fn)

    def _extend(self, directive: str, values) -> 'QueryBuilder':
        items = self.descriptor.setdefault(directive, [])
        for value in values:
            # 'a b,c' strings hold several names
            if isinstance(value, str):
                items.extend(value.replace(',', ' ').split())
            elif isinstance(value, (list, tuple)):
                self._extend(directive, value)
            else:
                items.append(value)
        return self

    def __repr__(self):
        return 'QueryBuilder({!r})'.format(self.descriptor)
