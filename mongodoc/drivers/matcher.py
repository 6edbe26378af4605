""" In-process evaluation of MongoDB-style filters, sorts and projections

Used by drivers that cannot push a filter down to their storage,
and by the query engine for filters that can only be applied after population.

Supports the following operators:

* `{ a: 1 }` - equality check. For an array field: containment check (any element equals).
* `{ a: { $eq: 1 } }`, `$ne`, `$lt`, `$lte`, `$gt`, `$gte`
* `{ a: { $in: [...] } }`, `$nin` - any of / none of
* `{ a: { $exists: true } }` - value is not `None`
* `{ a: { $prefix: 'abc' } }` - string prefix
* `{ arr: { $all: [...] } }` - array contains all values
* `{ arr: { $size: 0 } }` - array length
* `{ a: { $not: { ... } } }` - negation
* `{ $and: [...] }`, `{ $or: [...] }`, `{ $nor: [...] }` - boolean operators

Dotted paths hop through arrays: `most_purchased.item` looks at the `item` of every entry.
"""

from copy import deepcopy
from datetime import datetime
from typing import Iterable, List, Mapping, Sequence, Tuple

from ..exc import MalformedDescriptor


def _resolve(value, keys: Sequence[str]) -> list:
    """ Collect the values found at the path, hopping through lists """
    if not keys:
        return [value]
    key, rest = keys[0], keys[1:]
    if isinstance(value, dict):
        if key not in value:
            return []
        return _resolve(value[key], rest)
    elif isinstance(value, list):
        if key.isdigit():
            index = int(key)
            return _resolve(value[index], rest) if index < len(value) else []
        found = []
        for item in value:
            found.extend(_resolve(item, keys))
        return found
    return []


def get_values(doc: dict, path: str) -> list:
    """ Get all candidate values for a path. A missing value is seen as `None` """
    values = _resolve(doc, path.split('.'))
    return values or [None]


def _expand(values: Iterable) -> list:
    """ Every value, and every element of every list value """
    expanded = []
    for v in values:
        expanded.append(_comparable(v))
        if isinstance(v, list):
            expanded.extend(_comparable(item) for item in v)
    return expanded


def _comparable(value):
    """ A populated document is compared by its id """
    if isinstance(value, dict) and '_id' in value:
        return value['_id']
    return value


def _compare(op):
    def comparator(values, arg):
        for v in _expand(values):
            try:
                if v is not None and op(v, arg):
                    return True
            except TypeError:
                pass
        return False
    return comparator


def _op_eq(values, arg):
    if isinstance(arg, list):
        return any(v == arg for v in values)
    return any(v == arg for v in _expand(values))


def _op_in(values, arg):
    if not isinstance(arg, (list, tuple, set, frozenset)):
        raise MalformedDescriptor('$in and $nin require an array')
    return any(_op_eq(values, a) for a in arg)


def _op_all(values, arg):
    return any(isinstance(v, list) and all(a in [_comparable(i) for i in v] for a in arg)
               for v in values)


def _op_size(values, arg):
    return any(isinstance(v, list) and len(v) == arg for v in values)


#: Field operators: { '$operator': lambda values, arg }
OPERATORS = {
    '$eq': _op_eq,
    '$ne': lambda values, arg: not _op_eq(values, arg),
    '$lt': _compare(lambda v, arg: v < arg),
    '$lte': _compare(lambda v, arg: v <= arg),
    '$gt': _compare(lambda v, arg: v > arg),
    '$gte': _compare(lambda v, arg: v >= arg),
    '$in': _op_in,
    '$nin': lambda values, arg: not _op_in(values, arg),
    '$exists': lambda values, arg: any(v is not None for v in values) == bool(arg),
    '$prefix': lambda values, arg: any(isinstance(v, str) and v.startswith(arg) for v in _expand(values)),
    '$all': _op_all,
    '$size': _op_size,
    '$not': lambda values, arg: not _match_criteria(values, arg),
}

#: Boolean operators
BOOLEAN_OPERATORS = frozenset(('$and', '$or', '$nor'))


def _is_criteria(value) -> bool:
    """ Is the value a dict of operators? """
    return isinstance(value, dict) and bool(value) and all(k.startswith('$') for k in value)


def _match_criteria(values: list, criteria) -> bool:
    if not _is_criteria(criteria):
        return _op_eq(values, criteria)

    for op, arg in criteria.items():
        try:
            operator = OPERATORS[op]
        except KeyError:
            raise MalformedDescriptor('Unsupported operator: {}'.format(op))
        if not operator(values, arg):
            return False
    return True


def match(doc: dict, filter: Mapping) -> bool:
    """ Test whether a document matches a filter """
    for key, criteria in filter.items():
        if key in BOOLEAN_OPERATORS:
            if not isinstance(criteria, (list, tuple)):
                raise MalformedDescriptor('{} requires an array of conditions'.format(key))
            results = (match(doc, c) for c in criteria)
            if key == '$and' and not all(results):
                return False
            if key == '$or' and not any(results):
                return False
            if key == '$nor' and any(results):
                return False
        elif not _match_criteria(get_values(doc, key), criteria):
            return False
    return True


# region Sorting

# Order of values of different types
_TYPE_ORDER = (
    ((int, float), 1),
    (str, 2),
    (datetime, 3),
)


def _sort_key(value):
    """ A sort key that never fails on mixed types. `None` goes first """
    value = _comparable(value)
    if value is None:
        return (0, 0, 0)
    if isinstance(value, bool):
        return (1, 4, value)
    for types, order in _TYPE_ORDER:
        if isinstance(value, types):
            return (1, order, value)
    return (1, 5, str(value))


def sort_documents(docs: List[dict], sort: Sequence[Tuple[str, int]]) -> List[dict]:
    """ Sort documents, in place, by [(path, 1|-1), ...] """
    # Stable sorts, from the least significant key to the most significant one
    for path, direction in reversed(list(sort)):
        docs.sort(key=lambda doc: _sort_key(get_values(doc, path)[0]), reverse=direction < 0)
    return docs

# endregion


# region Projection

def _projection_tree(paths: Iterable[str]) -> dict:
    """ ['a.b', 'a.c', 'd'] -> {'a': {'b': True, 'c': True}, 'd': True} """
    tree = {}
    for path in paths:
        node = tree
        *parents, last = path.split('.')
        for key in parents:
            child = node.setdefault(key, {})
            if child is True:
                break
            node = child
        else:
            node[last] = True
    return tree


def _include(value, tree):
    if isinstance(value, list):
        return [_include(item, tree) for item in value if isinstance(item, (dict, list))]
    if not isinstance(value, dict):
        return value
    return {key: (value[key] if subtree is True else _include(value[key], subtree))
            for key, subtree in tree.items()
            if key in value}


def _exclude(value, tree):
    if isinstance(value, list):
        for item in value:
            _exclude(item, tree)
    elif isinstance(value, dict):
        for key, subtree in tree.items():
            if key not in value:
                continue
            if subtree is True:
                del value[key]
            else:
                _exclude(value[key], subtree)
    return value


def project(doc: dict, projection: Mapping[str, int]) -> dict:
    """ Apply a projection: {path: 1} includes, {path: 0} excludes.

    In an include projection, `_id` is included unless explicitly excluded.
    """
    if not projection:
        return doc

    include = [path for path, v in projection.items() if v]
    exclude = [path for path, v in projection.items() if not v]
    if include:
        if '_id' not in exclude and '_id' not in include:
            include.append('_id')
        return _include(doc, _projection_tree(include))
    return _exclude(deepcopy(doc), _projection_tree(exclude))

# endregion


def apply_options(docs: List[dict], sort=None, skip=None, limit=None, projection=None) -> List[dict]:
    """ Apply sort, skip, limit and projection to a list of matched documents """
    if sort:
        sort_documents(docs, sort)
    if skip:
        docs = docs[skip:]
    if limit is not None:
        docs = docs[:limit]
    if projection:
        docs = [project(doc, projection) for doc in docs]
    return docs
