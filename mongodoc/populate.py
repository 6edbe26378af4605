""" Population: replace references with the documents they refer to

The Populator works in batches: it collects the referenced ids of all documents first,
and then issues exactly one fetch per target collection, no matter how many documents there are.

When the references point to several collections, and the driver is thread-safe,
those fetches run concurrently.
"""

import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from copy import deepcopy
from typing import Dict, Iterable, List, Optional, Union

from .bag import FK_TYPE, ForeignKey, ForeignKeysBag, extract_fks
from .exc import PopulateError
from .handlers.populate import PopulatePath
from .util.paths import iter_nodes

logger = logging.getLogger(__name__)


class Populator:
    """ Batched population of references

    :type db: mongodoc.db.Database
    """

    def __init__(self, db):
        self.db = db

    def resolve_path(self, model, bags: ForeignKeysBag, path: str, ref: str = None) -> ForeignKey:
        """ Resolve a population path into the reference it names

        :param model: The model the documents belong to
        :param bags: Its foreign keys
        :param path: Reference path, e.g. 'favourite' or 'most_purchased.item'
        :param ref: Target collection override
        :raises PopulateError: the path is not a reference
        """
        fk = bags.get(path)
        if fk is not None:
            if fk.type == FK_TYPE.SUBDOCUMENT:
                raise PopulateError(model.collection, path, path, 'a sub-document is not a reference')
            if (ref or fk.ref) is None:
                raise PopulateError(model.collection, path, path, 'the reference has no target collection')
            return fk

        # Find the segment that went wrong
        keys = path.split('.')
        for i, key in enumerate(keys):
            prefix = '.'.join(keys[:i + 1])
            if model.schema.get_field(prefix) is None:
                through = bags.resolving_ref(prefix)
                if through is not None:
                    raise PopulateError(model.collection, path, key,
                                        'cannot populate through the reference "{}"'.format(through.path))
                raise PopulateError(model.collection, path, key, 'unknown field')
        raise PopulateError(model.collection, path, keys[-1], 'not a reference')

    def populate(self, model, docs: List[dict], paths: Iterable[Union[str, PopulatePath]],
                 cache_fks: bool = True, plain: bool = False) -> List[dict]:
        """ Populate references of documents, in place

        :param model: The model the documents belong to
        :param docs: Documents to populate
        :param paths: Reference paths
        :param cache_fks: Reuse the memoized foreign keys
        :param plain: Populate with plain dicts, not Documents
        :return: the same documents
        """
        bags = extract_fks(model.schema, cache=cache_fks, max_depth=self.db.settings.get('max_depth'))

        # Plan: find the nodes to substitute, collect ids per target collection
        jobs = []
        ids_by_target = OrderedDict()  # { target: { id: None } } (an ordered set)
        for p in paths:
            if isinstance(p, str):
                p = PopulatePath(p)
            fk = self.resolve_path(model, bags, p.path, p.ref)
            target = p.ref or fk.ref
            self.db.resolve(target)  # references are validated lazily

            ids = ids_by_target.setdefault(target, OrderedDict())
            nodes = [node for doc in docs for node in iter_nodes(doc, fk.path)]
            for node in nodes:
                for id in _get_ids(node.value):
                    ids[id] = None
            jobs.append((fk, target, nodes))

        # Fetch
        found = self._fetch_all(ids_by_target)

        # Substitute
        drop_unresolved = self.db.settings.get('populate_drop_unresolved')
        for fk, target, nodes in jobs:
            wrap = self._get_wrapper(target, plain)
            target_docs = found[target]
            for node in nodes:
                if fk.type == FK_TYPE.REF_ARRAY:
                    if not isinstance(node.value, list):
                        continue
                    values = [_substitute(v, target_docs, wrap) for v in node.value]
                    if drop_unresolved:
                        values = [v for v in values if v is not None]
                    node.container[node.key] = values
                else:
                    node.container[node.key] = _substitute(node.value, target_docs, wrap)
        return docs

    def _fetch_all(self, ids_by_target: Dict[str, dict]) -> Dict[str, Dict[str, dict]]:
        """ Fetch the documents of every target: one fetch per collection """
        driver = self.db.driver
        targets = list(ids_by_target.items())
        max_workers = self.db.settings.get('populate_max_workers')

        if len(targets) > 1 and driver.thread_safe and max_workers != 1:
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='mongodoc-populate') as pool:
                futures = [(target, pool.submit(self._fetch, target, ids)) for target, ids in targets]
                return {target: future.result() for target, future in futures}
        return {target: self._fetch(target, ids) for target, ids in targets}

    def _fetch(self, target: str, ids: Iterable[str]) -> Dict[str, dict]:
        ids = list(ids)
        if not ids:
            return {}
        logger.debug('Populating %d documents from "%s"', len(ids), target)
        docs = self.db.driver.find(target, {'_id': {'$in': ids}})
        return {doc['_id']: doc for doc in docs}

    def _get_wrapper(self, target: str, plain: bool):
        if plain:
            return deepcopy
        model = self.db.resolve(target)
        return lambda doc: model.document(deepcopy(doc))


def _get_ids(value) -> List[str]:
    """ Get the unresolved ids from a reference value """
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def _substitute(value, target_docs: Dict[str, dict], wrap) -> Optional[dict]:
    """ Replace an id with its document. Already populated values are kept """
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value in target_docs:
        return wrap(target_docs[value])
    return None
