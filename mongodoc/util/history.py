from copy import deepcopy
from typing import Callable, List, Set


class ModifiedTracker:
    """ Keeps the loaded state of a document, to tell which of its fields were modified since.

    The state is copied in full with deepcopy(), so that nested dicts and lists can be compared later.
    In addition, we remember every container (dict or list) the document was loaded with:
    when a container is replaced as a whole, it's not compared item by item:
    the whole field is modified.

    Granularity:

    * A changed scalar marks its own path: `settings.lang`, `most_purchased.0.number`
    * A replaced dict or list marks its own path: `settings`
    * A new key, or a new list item, marks its own path: `items.3`
    * A removed key marks its own path; a list that got shorter marks the list
    * A populated reference is compared by its `_id` only
    """

    def __init__(self, data: dict, is_populated: Callable = None):
        """ Start tracking

        :param data: The document to track
        :param is_populated: A callable(value) -> bool that tells populated references from sub-documents
        """
        self._is_populated = is_populated or (lambda value: False)
        self.reset(data)

    def reset(self, data: dict):
        """ Forget all modifications: the current state becomes the loaded state """
        #: A copy of the loaded state
        self._snapshot = self._copy(data)
        #: { path: container }: the dicts and lists of the loaded state
        self._containers = {}
        #: Is the whole document modified?
        self._all_modified = False

        stack = [('', data)]
        while stack:
            path, value = stack.pop()
            if self._is_populated(value):
                continue
            if isinstance(value, dict):
                self._containers[path] = value
                stack.extend((_join(path, k), v) for k, v in value.items())
            elif isinstance(value, list):
                self._containers[path] = value
                stack.extend((_join(path, str(i)), v) for i, v in enumerate(value))

    def _copy(self, value):
        """ Copy a value; populated references are reduced to their `_id` """
        if self._is_populated(value):
            return {'_id': _get_id(value)}
        if isinstance(value, dict):
            return {k: self._copy(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._copy(v) for v in value]
        return deepcopy(value)

    def mark_all_modified(self):
        """ Consider every field modified """
        self._all_modified = True

    def get_modified(self, data: dict) -> List[str]:
        """ Get the sorted list of modified paths """
        if self._all_modified:
            return sorted(k for k in data if k != '_id')

        modified = set()
        self._compare('', data, self._snapshot, modified)
        return sorted(modified)

    def is_modified(self, data: dict, path: str = None) -> bool:
        """ Test whether a path is modified: the path itself, its parent, or any of its children """
        modified = self.get_modified(data)
        if path is None:
            return bool(modified)
        return any(m == path or m.startswith(path + '.') or path.startswith(m + '.')
                   for m in modified)

    def _compare(self, path: str, current, loaded, modified: Set[str]):
        # Populated references: compare ids
        if self._is_populated(current) or self._is_populated(loaded):
            if _get_id(current) != _get_id(loaded):
                modified.add(path)
            return

        # Scalars
        if not isinstance(current, (dict, list)):
            if type(current) != type(loaded) or current != loaded:
                modified.add(path)
            return

        # Replaced containers
        if self._containers.get(path) is not current:
            modified.add(path)
            return

        # Dicts: compare keys
        if isinstance(current, dict):
            for key in current.keys() | loaded.keys():
                key_path = _join(path, key)
                if key not in current or key not in loaded:
                    modified.add(key_path)
                else:
                    self._compare(key_path, current[key], loaded[key], modified)
        # Lists: compare items
        else:
            if len(current) < len(loaded):
                modified.add(path)
                return
            for i, item in enumerate(current):
                item_path = _join(path, str(i))
                if i >= len(loaded):
                    modified.add(item_path)
                else:
                    self._compare(item_path, item, loaded[i], modified)


def _join(path: str, key: str) -> str:
    return path + '.' + key if path else key


def _get_id(value):
    return value.get('_id') if isinstance(value, dict) else value
