""" Dotted-path helpers for nested documents

A dotted path like `settings.lang` or `most_purchased.0.number` addresses a value inside a document.
Numeric segments index into lists.
"""

from typing import Any, Iterator, List, NamedTuple, Union


def split_path(path: str) -> List[str]:
    return path.split('.') if path else []


def _segment(container, key: str):
    """ Get a child of a container by a path segment. Raises KeyError/IndexError when missing """
    if isinstance(container, list):
        if not key.isdigit():
            raise KeyError(key)
        return container[int(key)]
    elif isinstance(container, dict):
        return container[key]
    else:
        raise KeyError(key)


def get_path(doc: dict, path: str, default=None) -> Any:
    """ Get a value by its dotted path, or `default` """
    value = doc
    try:
        for key in split_path(path):
            value = _segment(value, key)
    except (KeyError, IndexError):
        return default
    return value


def set_path(doc: dict, path: str, value: Any):
    """ Set a value by its dotted path, creating intermediate dicts """
    *parents, last = split_path(path)
    container = doc
    for key in parents:
        if isinstance(container, list):
            container = container[int(key)]
        else:
            container = container.setdefault(key, {})
            if container is None:
                raise KeyError(key)

    if isinstance(container, list):
        index = int(last)
        if index == len(container):
            container.append(value)
        else:
            container[index] = value
    else:
        container[last] = value


def unset_path(doc: dict, path: str) -> bool:
    """ Remove a value by its dotted path. Returns whether anything was removed """
    *parents, last = split_path(path)
    try:
        container = doc
        for key in parents:
            container = _segment(container, key)
        if isinstance(container, list):
            del container[int(last)]
        else:
            del container[last]
    except (KeyError, IndexError, ValueError):
        return False
    return True


class Node(NamedTuple):
    """ A located value within a document """
    #: Dotted path to the value, with list indexes, e.g. "most_purchased.0.item"
    path: str
    #: The dict or list that holds the value
    container: Union[dict, list]
    #: The key (or list index) within the container
    key: Union[str, int]
    #: The value itself
    value: Any


def iter_nodes(doc: dict, schema_path: str) -> Iterator[Node]:
    """ Find every value that matches a schema path, hopping through lists

    A schema path has no list indexes: `most_purchased.item` matches every
    `most_purchased.<n>.item` of the document. Missing values are skipped.
    The last segment is not expanded: for a list of references, the list itself is yielded.
    """
    keys = split_path(schema_path)
    # (container, path prefix, remaining keys)
    worklist = [(doc, '', keys)]
    while worklist:
        container, prefix, remaining = worklist.pop(0)
        key, rest = remaining[0], remaining[1:]
        if not isinstance(container, dict) or key not in container:
            continue

        value = container[key]
        path = prefix + key
        if not rest:
            yield Node(path, container, key, value)
        elif isinstance(value, list):
            for i, item in enumerate(value):
                worklist.append((item, '{}.{}.'.format(path, i), rest))
        elif isinstance(value, dict):
            worklist.append((value, path + '.', rest))
