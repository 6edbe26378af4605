""" Documents: fetched data, with behavior

A Document is a dict: its keys are the data fields, and nothing else.
Identity, the model, and modification tracking live in attributes:

```python
user = db.get({'$collection': 'users', '$id': user_id})
user['name']                 # data
user.id, user.collection     # identity
user.split_names()           # a method registered with Model.method()
user['password'] = 'flume'   # a virtual field: runs its setter

user['settings']['lang'] = 'fr'
user.is_modified()           #-> ['settings.lang']
user.save()
user.is_modified()           #-> []
```
"""

from copy import deepcopy
from types import MethodType
from typing import List, Union

from .bag import FK_TYPE
from .exc import PostHookError
from .util.history import ModifiedTracker
from .util.paths import Node, get_path, iter_nodes, set_path, unset_path


class Document(dict):
    """ A document of a collection

    :type _model: mongodoc.model.Model
    """

    def __init__(self, model, data: dict = None, dirty: bool = False):
        """ Wrap the data

        :param model: The model of the collection
        :param data: The fields
        :param dirty: Consider every field modified
        """
        super(Document, self).__init__(data or {})
        self._model = model
        self._deleted = False
        self._tracker = ModifiedTracker(self, is_populated=self._is_populated)
        if dirty:
            self._tracker.mark_all_modified()

    def _is_populated(self, value) -> bool:
        return isinstance(value, Document) and value is not self

    # region Identity

    @property
    def id(self):
        return dict.get(self, '_id')

    @property
    def collection(self) -> str:
        return self._model.collection

    @property
    def model(self):
        """ :rtype: mongodoc.model.Model """
        return self._model

    @property
    def schema(self):
        """ :rtype: mongodoc.schema.Schema """
        return self._model.schema

    @property
    def is_deleted(self) -> bool:
        return self._deleted

    # endregion

    # region Virtuals & methods

    def __getitem__(self, key):
        virtual = self._model.virtuals.get(key)
        if virtual is not None:
            if virtual.getter is None:
                raise KeyError(key)
            return virtual.getter(self)
        return super(Document, self).__getitem__(key)

    def __setitem__(self, key, value):
        virtual = self._model.virtuals.get(key)
        if virtual is not None:
            if virtual.setter is None:
                raise KeyError('Virtual field "{}" is read-only'.format(key))
            virtual.setter(self, value)
        else:
            super(Document, self).__setitem__(key, value)

    def get(self, key, default=None):
        if key in self._model.virtuals:
            return self[key]
        return super(Document, self).get(key, default)

    def __getattr__(self, name):
        # Only called when the normal lookup fails
        if name.startswith('_'):
            raise AttributeError(name)
        method = self._model.methods.get(name)
        if method is None:
            raise AttributeError('{!r} has no method {!r}'.format(self.__class__.__name__, name))
        return MethodType(method, self)

    # endregion

    # region Modifications

    def is_modified(self, path: str = None) -> Union[List[str], bool]:
        """ Get modified paths, or test whether a path is modified

        :param path: A dotted path. When given, test whether this path, its parent, or any of its children is modified.
        :return: The sorted list of modified paths; or, with a `path`, a bool
        """
        if path is None:
            return self._tracker.get_modified(self)
        return self._tracker.is_modified(self, path)

    def get_modified(self) -> List[str]:
        """ Get the list of modified paths """
        return self._tracker.get_modified(self)

    def mark_modified(self):
        """ Consider every field modified: the next save() writes the whole document """
        self._tracker.mark_all_modified()

    # endregion

    # region Storage

    def save(self, **extra) -> 'Document':
        """ Save the modified fields

        A document that has no `_id` yet is created instead.

        :param extra: More {dotted path: value} to save
        :raises ValidationError: invalid values
        :raises NotFound: the document does not exist anymore
        :raises HookAborted: a `save` hook has failed
        :raises PostHookError: a post-hook has failed. The document is saved and clean nevertheless.
        """
        db = self._model.db
        if self.id is None:
            try:
                created = db.create(dict(self.to_storage(), **extra, **{'$collection': self.collection}))
            except PostHookError as e:
                # Stored already
                self._saved(e.result)
                raise
            self._saved(created)
            return self

        storage = self.to_storage()
        patch = {path: get_path(storage, path)
                 for path in _collapse_paths(self.is_modified())}
        patch.update(extra)
        try:
            db.save(dict(patch, **{'$collection': self.collection, '$id': self.id, '$refetch': False}))
        except PostHookError:
            # Stored already
            self._saved(extra=extra)
            raise
        self._saved(extra=extra)
        return self

    def _saved(self, created=None, extra=None):
        """ Take the stored state as the loaded one """
        if created is not None:
            dict.update(self, created)
        for path, value in (extra or {}).items():
            set_path(self, path, value)
        self._tracker.reset(self)

    def delete(self) -> bool:
        """ Delete the document from the storage, and detach it """
        removed = self._model.db.delete({'$collection': self.collection, '$id': self.id})
        self._deleted = True
        return bool(removed)

    remove = delete

    def populate(self, *paths) -> 'Document':
        """ Populate references, in place

        :param paths: Reference paths, e.g. 'favourite', 'most_purchased.item'
        """
        self._model.db.populator.populate(self._model, [self], paths)
        return self

    # endregion

    # region Conversion

    def to_dict(self) -> dict:
        """ A plain, deep copy. Populated documents become plain dicts """
        return _to_plain(self)

    def to_storage(self) -> dict:
        """ A plain copy in the stored form: populated references are collapsed back to their ids """
        data = _to_plain(self)
        for path, fk in self._model.get_fks():
            if fk.type == FK_TYPE.SUBDOCUMENT or fk.ref is None:
                continue
            for node in iter_nodes(data, path):
                if fk.type == FK_TYPE.REF_ARRAY and isinstance(node.value, list):
                    node.container[node.key] = [_get_id(v) for v in node.value]
                else:
                    node.container[node.key] = _get_id(node.value)
        return data

    def omit(self, *paths) -> dict:
        """ A plain copy without the given dotted paths """
        data = self.to_dict()
        for path in paths:
            unset_path(data, path)
        return data

    def get_nodes_by_path(self, path: str) -> List[Node]:
        """ Find every value that matches a schema path, hopping through arrays

        Example: get_nodes_by_path('most_purchased.item') finds the item of every entry
        """
        return list(iter_nodes(self, path))

    # endregion

    def __deepcopy__(self, memo):
        return Document(self._model, deepcopy(dict(self), memo))

    def __copy__(self):
        return Document(self._model, dict(self))

    def __reduce__(self):
        # A pickled document is plain data
        return dict, (self.to_dict(),)

    def __repr__(self):
        return '<Document {}:{} {}>'.format(self.collection, self.id, dict.__repr__(self))


def _to_plain(value):
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in dict.items(value)}
    elif isinstance(value, list):
        return [_to_plain(v) for v in value]
    else:
        return deepcopy(value)


def _get_id(value):
    return value.get('_id') if isinstance(value, dict) else value


def _collapse_paths(paths: List[str]) -> List[str]:
    """ Turn modified paths into paths that can be $set

    A new list item (`items.3`) can't be set on its own: the whole list is saved instead.
    Paths within another path are dropped.
    """
    collapsed = set()
    for path in paths:
        parent, _, last = path.rpartition('.')
        collapsed.add(parent if parent and last.isdigit() else path)
    return sorted(p for p in collapsed
                  if not any(p.startswith(other + '.') for other in collapsed))

