from typing import List, Mapping, NamedTuple, Optional, Sequence, Tuple


class FindOptions(NamedTuple):
    """ Options of a fetch operation """
    #: Sort: [(path, 1 | -1), ...]
    sort: Sequence[Tuple[str, int]] = ()
    #: Number of documents to skip
    skip: Optional[int] = None
    #: Maximum number of documents to return
    limit: Optional[int] = None
    #: Projection: {path: 1} to include, {path: 0} to exclude
    projection: Optional[Mapping[str, int]] = None


class StorageDriver:
    """ The storage a Database works on

    A driver stores plain documents (dicts) in named collections.
    Every document has a string `_id`.

    Filters are MongoDB-style filters (see `mongodoc.drivers.matcher`).
    Every method returns independent copies: the caller is free to modify them.
    """

    #: Can this driver be used from several threads at once?
    #: When it can, population fetches to different collections run concurrently.
    thread_safe = False

    def find_one(self, collection: str, filter: Mapping, options: FindOptions = None) -> Optional[dict]:
        """ Find a single document, or None """
        options = (options or FindOptions())._replace(limit=1)
        docs = self.find(collection, filter, options)
        return docs[0] if docs else None

    def find(self, collection: str, filter: Mapping, options: FindOptions = None) -> List[dict]:
        """ Find documents """
        raise NotImplementedError

    def count(self, collection: str, filter: Mapping) -> int:
        """ Count documents """
        return len(self.find(collection, filter))

    def insert(self, collection: str, fields: dict) -> dict:
        """ Insert a document.

        An `_id` is generated if the document does not have one.

        :return: the stored document
        """
        raise NotImplementedError

    def update(self, collection: str, id: str, fields: Mapping) -> Optional[dict]:
        """ Update a document by id

        :param fields: {dotted path: value} to set
        :return: the updated document, or None if not found
        """
        raise NotImplementedError

    def remove(self, collection: str, id: str) -> bool:
        """ Remove a document by id

        :return: whether it was removed
        """
        raise NotImplementedError
