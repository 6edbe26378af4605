import logging
import threading
from collections import OrderedDict, defaultdict
from copy import deepcopy
from typing import List, Mapping, Optional

from . import matcher
from .base import FindOptions, StorageDriver
from ..schema import generate_id
from ..util.paths import set_path

logger = logging.getLogger(__name__)


class MemoryDriver(StorageDriver):
    """ Keeps documents in memory

    Documents are kept in insertion order.
    """

    thread_safe = True

    def __init__(self):
        #: { collection: { id: doc } }
        self._collections = defaultdict(OrderedDict)
        self._lock = threading.RLock()

    def find(self, collection: str, filter: Mapping, options: FindOptions = None) -> List[dict]:
        options = options or FindOptions()
        with self._lock:
            docs = [deepcopy(doc)
                    for doc in self._candidates(collection, filter)
                    if matcher.match(doc, filter)]
        logger.debug('find %s %r: %d documents', collection, filter, len(docs))
        return matcher.apply_options(docs, *options)

    def count(self, collection: str, filter: Mapping) -> int:
        with self._lock:
            return sum(1 for doc in self._candidates(collection, filter) if matcher.match(doc, filter))

    def insert(self, collection: str, fields: dict) -> dict:
        doc = deepcopy(fields)
        doc.setdefault('_id', generate_id())
        with self._lock:
            docs = self._collections[collection]
            if doc['_id'] in docs:
                raise KeyError('Duplicate id "{}" in "{}"'.format(doc['_id'], collection))
            docs[doc['_id']] = doc
            return deepcopy(doc)

    def update(self, collection: str, id: str, fields: Mapping) -> Optional[dict]:
        with self._lock:
            doc = self._collections[collection].get(id)
            if doc is None:
                return None
            for path, value in fields.items():
                set_path(doc, path, deepcopy(value))
            return deepcopy(doc)

    def remove(self, collection: str, id: str) -> bool:
        with self._lock:
            return self._collections[collection].pop(id, None) is not None

    def _candidates(self, collection: str, filter: Mapping):
        """ Documents to test the filter against. Looks `_id` up directly when possible """
        docs = self._collections[collection]
        id = filter.get('_id')
        if isinstance(id, str):
            return [docs[id]] if id in docs else []
        if isinstance(id, dict) and set(id) == {'$in'}:
            ids = set(id['$in'])
            return [doc for i, doc in docs.items() if i in ids]
        return list(docs.values())
