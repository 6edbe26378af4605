""" Foreign keys of a schema

A schema's references are collected into a flat bag: { dotted path: ForeignKey }.
Lookups by a fully-qualified path are O(1), no matter how deep the reference is nested.

Example, for the `users` schema:

    favourite           -> ref (widgets)
    items               -> ref_array (widgets)
    most_purchased      -> subdocument (array)
    most_purchased.item -> ref (widgets)
    most_purchased._id  -> ref (no target)
    settings            -> subdocument
    settings.featured   -> ref (widgets)

The top-level `_id` (and `id`) is the document's own identity, and is not a foreign key.
The `_id` of a sub-document array entry, however, is.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Mapping, NamedTuple, Optional, Set, Tuple

from .exc import SchemaError
from .schema import FIELD_TYPE, Field, Schema


class FK_TYPE(Enum):
    """ Kinds of foreign keys """
    REF = 'ref'
    REF_ARRAY = 'ref_array'
    SUBDOCUMENT = 'subdocument'


class ForeignKey(NamedTuple):
    """ A foreign key: a reference to another collection, or a sub-document that may contain some """
    path: str
    type: FK_TYPE
    #: Target collection; None for sub-documents and for unbound ids
    ref: Optional[str]
    #: Whether the node is an array (ref_array, or an array of sub-documents)
    is_array: bool


#: Fields that name the document itself
IDENTITY_FIELDS = frozenset(('_id', 'id'))

#: Default maximum nesting depth
DEFAULT_MAX_DEPTH = 32


class ForeignKeysBag:
    """ Foreign keys bag

    Keeps track of the references of a schema.
    """

    def __init__(self, fks: Mapping[str, ForeignKey]):
        self._fks = dict(fks)
        self._names = frozenset(self._fks.keys())
        self._ref_names = frozenset(path
                                    for path, fk in self._fks.items()
                                    if fk.type != FK_TYPE.SUBDOCUMENT)

    @property
    def names(self) -> FrozenSet[str]:
        """ Get the set of foreign key paths """
        return self._names

    @property
    def ref_names(self) -> FrozenSet[str]:
        """ Get the set of reference paths (excluding sub-documents) """
        return self._ref_names

    def __iter__(self) -> Iterable[Tuple[str, ForeignKey]]:
        return iter(self._fks.items())

    def __contains__(self, path: str) -> bool:
        return path in self._fks

    def __getitem__(self, path: str) -> ForeignKey:
        return self._fks[path]

    def __len__(self):
        return len(self._fks)

    def __eq__(self, other):
        return isinstance(other, ForeignKeysBag) and self._fks == other._fks

    def get(self, path: str) -> Optional[ForeignKey]:
        return self._fks.get(path)

    def get_invalid_names(self, names: Iterable[str]) -> Set[str]:
        """ Get the paths that are not foreign keys

        Use this for validation.
        """
        return set(names) - self.names

    def as_dict(self) -> dict:
        """ { path: {type, ref} }, in a JSON-friendly form """
        return {path: {'type': fk.type.value, 'ref': fk.ref} for path, fk in self._fks.items()}

    def resolving_ref(self, path: str) -> Optional[ForeignKey]:
        """ Find the reference that `path` goes through

        Example: 'favourite.color' goes through 'favourite'.
        Only references with a target are considered.

        :return: the reference, or None if the path does not go through one
        """
        keys = path.split('.')
        for i in range(1, len(keys)):
            fk = self._fks.get('.'.join(keys[:i]))
            if fk is not None and fk.type != FK_TYPE.SUBDOCUMENT and fk.ref is not None:
                return fk
        return None


def extract_fks(schema: Schema, cache: bool = True, max_depth: int = DEFAULT_MAX_DEPTH) -> ForeignKeysBag:
    """ Get the foreign keys of a schema

    The result is memoized on the schema.

    :param schema: The schema to inspect
    :param cache: Reuse the memoized bag. With `False`, recompute it (and memoize the new one)
    :param max_depth: Maximum nesting depth
    :raises SchemaError: the schema is nested deeper than `max_depth`
    """
    if cache and schema._fks is not None:
        return schema._fks

    fks = {}
    # (field, depth)
    stack = [(field, 1) for field in reversed(list(schema.fields.values()))]
    while stack:
        field, depth = stack.pop()
        if depth > max_depth:
            raise SchemaError(schema.collection, 'nesting is deeper than {} at "{}"'.format(max_depth, field.path))

        # The document's own id is not a reference
        if depth == 1 and field.name in IDENTITY_FIELDS:
            continue

        fk, children = _classify(field)
        if fk is not None:
            fks[fk.path] = fk
        stack.extend((child, depth + 1) for child in reversed(children))

    schema._fks = bags = ForeignKeysBag(fks)
    return bags


def _classify(field: Field) -> Tuple[Optional[ForeignKey], list]:
    """ Classify a field: (foreign key or None, children to visit) """
    t = field.type
    if t in (FIELD_TYPE.REFERENCE, FIELD_TYPE.ID):
        return ForeignKey(field.path, FK_TYPE.REF, field.ref, False), []
    elif t == FIELD_TYPE.SUBDOCUMENT:
        return ForeignKey(field.path, FK_TYPE.SUBDOCUMENT, None, False), list(field.fields.values())
    elif t == FIELD_TYPE.ARRAY:
        items = field.items
        if items.type == FIELD_TYPE.REFERENCE:
            return ForeignKey(field.path, FK_TYPE.REF_ARRAY, items.ref, True), []
        elif items.type == FIELD_TYPE.SUBDOCUMENT:
            return ForeignKey(field.path, FK_TYPE.SUBDOCUMENT, None, True), list(items.fields.values())
    return None, []
