from copy import deepcopy
from typing import Mapping


def diff(original: Mapping, new: Mapping, flat: bool = False) -> dict:
    """ Get a patch that turns one document into another

    The patch is suitable for `Database.save()`:

    * Unchanged fields are omitted
    * Changed and new fields have their new values. Nested dicts are compared key by key,
      lists are replaced as a whole.
    * Removed fields are set to `None`

    ```python
    diff({'name': 'Joe', 'settings': {'lang': 'en'}},
         {'name': 'Joe', 'settings': {'lang': 'fr'}})
    #-> {'settings': {'lang': 'fr'}}
    ```

    :param original: The original document
    :param new: The modified document
    :param flat: Give nested changes as dotted paths: {'settings.lang': 'fr'}
    """
    patch = {}
    for key, value in new.items():
        if key not in original:
            patch[key] = deepcopy(value)
        elif isinstance(value, Mapping) and isinstance(original[key], Mapping):
            sub_patch = diff(original[key], value, flat)
            if not sub_patch:
                continue
            if flat:
                patch.update(('{}.{}'.format(key, k), v) for k, v in sub_patch.items())
            else:
                patch[key] = sub_patch
        elif type(value) != type(original[key]) or value != original[key]:
            patch[key] = deepcopy(value)

    for key in original:
        if key not in new:
            patch[key] = None
    return patch
