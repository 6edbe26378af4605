"""
### Sort Operation

The `$sort` directive orders the results.

```python
db.query({
    '$collection': 'users',
    # sort by role, descending;
    # then sort by name, alphabetically
    '$sort': ['-role', 'name'],
})
```

#### Syntax

* Array syntax.

    List of field paths, optionally prefixed by the sort direction: `-` for descending, `+` for ascending.
    The default is `+`.

    ```python
    {'$sort': ['a', '-b', '+c']}  # -> a ASC, b DESC, c ASC
    ```

* String syntax

    List of fields, with optional `+` / `-`, separated by whitespace or commas.

    ```python
    {'$sort': '-created name'}
    ```

* Object syntax

    ```python
    {'$sort': {'created': -1, 'name': 'asc'}}
    ```
"""

from collections import OrderedDict

from .base import DocQueryHandlerBase
from ..exc import MalformedDescriptor

_DIRECTIONS = {1: +1, -1: -1, 'asc': +1, 'desc': -1}


class DocSort(DocQueryHandlerBase):
    """ MongoDB-style sorting

        * None: no sorting
        * OrderedDict({ a: +1, b: -1 })
        * [ 'a', '-b', '+c' ]  - array of strings '[+|-]<field>'. default direction = +1
        * 'a -b'  - the same, as a string
    """

    query_object_section_name = '$sort'

    def __init__(self, model, bags):
        super(DocSort, self).__init__(model, bags)

        # On input
        #: OrderedDict() of a sort spec: {path: +1|-1}
        self.sort_spec = OrderedDict()

    def _input(self, spec):
        # Empty
        if not spec:
            return OrderedDict()

        # String syntax
        if isinstance(spec, str):
            spec = spec.replace(',', ' ').split()

        # List
        if isinstance(spec, (list, tuple)):
            if not all(isinstance(v, str) and v.lstrip('+-') for v in spec):
                raise MalformedDescriptor('{} must be a list of field names'.format(self.query_object_section_name))
            spec = OrderedDict(
                (v[1:], -1 if v[0] == '-' else +1)
                if v[0] in {'+', '-'}
                else (v, +1)
                for v in spec
            )
        # Dict
        elif isinstance(spec, dict):
            try:
                spec = OrderedDict((path, _DIRECTIONS[d]) for path, d in spec.items())
            except (KeyError, TypeError):
                raise MalformedDescriptor('{} direction can be either +1 or -1'.format(self.query_object_section_name))
        else:
            raise MalformedDescriptor('{name} must be either a list, a string, or an object; {type} provided.'
                                      .format(name=self.query_object_section_name, type=type(spec)))

        # Validate fields
        self.validate_properties(spec.keys())
        return spec

    def input(self, sort_spec):
        super(DocSort, self).input(sort_spec)
        self.sort_spec = self._input(sort_spec)
        return self

    def alter_fetch(self, fetch):
        fetch.sort = list(self.sort_spec.items())
        return fetch

    def get_final_input_value(self):
        return ['{}{}'.format('-' if d == -1 else '', name)
                for name, d in self.sort_spec.items()]
