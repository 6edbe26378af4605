"""
### Select Operation

Selection picks a subset of the fields of a document.

You do this by either listing the fields that you need (called *include mode*), or listing the fields that you
*do not* need (called *exclude mode*).

```python
db.query({
    '$collection': 'users',
    # only include the following fields
    '$select': ['name', 'settings.lang'],
})
```

#### Syntax

* Array syntax: field paths to include; a leading `-` excludes a field instead.

    ```python
    {'$select': ['name', 'role']}
    {'$select': ['-_password']}
    ```

* String syntax: the same, separated by whitespace or commas.

    ```python
    {'$select': 'name role'}
    ```

* Object syntax: field paths mapped to either a `1` (include) or a `0` (exclude).
  Nested objects are flattened into dotted paths.

    ```python
    {'$select': {'name': 1, 'settings': {'lang': 1}}}  # -> name, settings.lang
    ```

Note that you can't intermix the two modes in one selection.
The only exception is `_id`: it is always included, but an include selection can exclude it.

Selecting a field of a populated document (e.g. `favourite.name`) is not supported.

#### Fields Excluded by Default
Some fields may be excluded *by default*, with the `default_exclude` setting.
You will not receive those fields unless you explicitly request them.
"""

from .base import DocQueryHandlerBase
from ..exc import MalformedDescriptor


class DocSelect(DocQueryHandlerBase):
    """ MongoDB-style field selection

        * None: all fields
        * [ 'a', 'b.c' ] | 'a b.c': include mode
        * [ '-a', '-b' ]: exclude mode
        * { a: 1, b: { c: 1 } }: include mode
        * { a: 0 }: exclude mode
    """

    query_object_section_name = '$select'

    #: Include mode: only listed fields
    MODE_INCLUDE = 1
    #: Exclude mode: all fields but the listed ones
    MODE_EXCLUDE = 0

    def __init__(self, model, bags, default_exclude=None):
        """ Init a selection

        :param default_exclude: Fields that are excluded unless explicitly requested
        """
        super(DocSelect, self).__init__(model, bags)

        # Settings
        self.default_exclude = tuple(default_exclude or ())

        # On input
        #: The mode
        self.mode = self.MODE_EXCLUDE
        #: { path: 1 | 0 }
        self.projection = {}

    def input(self, projection):
        """ Create a selection

            :type projection: None | str | Sequence | dict
            :raises MalformedDescriptor: invalid input
        """
        super(DocSelect, self).input(projection)

        projection = self._flatten(projection)
        self.validate_properties(projection.keys())

        # Pick the mode. `_id` does not count: it can be excluded in include mode
        modes = {v for path, v in projection.items() if path != '_id'}
        if len(modes) > 1:
            raise MalformedDescriptor('{} cannot mix included and excluded fields'
                                      .format(self.query_object_section_name))
        if modes:
            self.mode = modes.pop()
        elif projection:
            self.mode = projection['_id']

        self.projection = projection
        return self

    def _flatten(self, projection) -> dict:
        """ Convert the input into a flat { path: 1|0 } dict """
        if not projection:
            return {}

        # String syntax
        if isinstance(projection, str):
            projection = projection.replace(',', ' ').split()

        # Array syntax
        if isinstance(projection, (list, tuple)):
            if not all(isinstance(v, str) and v.lstrip('+-') for v in projection):
                raise MalformedDescriptor('{} must be a list of field names'.format(self.query_object_section_name))
            return {v.lstrip('+-'): 0 if v.startswith('-') else 1
                    for v in projection}

        # Dict syntax
        if not isinstance(projection, dict):
            raise MalformedDescriptor('{name} must be either a list, a string, or an object; {type} provided.'
                                      .format(name=self.query_object_section_name, type=type(projection)))

        flat = {}
        stack = [('', projection)]
        while stack:
            prefix, node = stack.pop()
            for key, value in node.items():
                path = prefix + key
                if isinstance(value, dict):
                    stack.append((path + '.', value))
                elif value in (0, 1, -1, True, False):
                    flat[path] = 1 if value in (1, True) else 0
                else:
                    raise MalformedDescriptor('{} values can be either 1 or 0'.format(self.query_object_section_name))
        return flat

    def is_input_empty(self):
        return not self.projection

    def alter_fetch(self, fetch):
        projection = dict(self.projection)
        # Settings: default_exclude
        # The only way to load these fields is to explicitly request them.
        if self.mode == self.MODE_EXCLUDE:
            projection.update({path: 0 for path in self.default_exclude if path not in projection})
        fetch.projection = projection or None
        return fetch

    def get_final_input_value(self):
        return self.projection
