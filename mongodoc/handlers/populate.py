"""
### Populate Operation

References hold the ids of documents from other collections.
Population replaces those ids with the documents themselves.

```python
db.query({
    '$collection': 'users',
    '$populate': ['favourite', 'items', 'most_purchased.item'],
})
```

#### Syntax

* String syntax: reference paths, separated by whitespace or commas

    ```python
    {'$populate': 'favourite items'}
    ```

* Array syntax: reference paths, or objects `{path, ref}`.
  `ref` overrides the target collection of the reference.

    ```python
    {'$populate': ['favourite', {'path': 'items', 'ref': 'widgets'}]}
    ```

References in arrays of sub-documents are populated in every entry: `most_purchased.item`.
Unresolved references become `None`.

Multi-hop population (a reference within a referenced document, e.g. `users.favourite` of a group)
is not supported.
"""

from collections import OrderedDict
from typing import NamedTuple, Optional

from .base import DocQueryHandlerBase
from ..exc import MalformedDescriptor


class PopulatePath(NamedTuple):
    """ A path to populate """
    path: str
    #: Target collection override
    ref: Optional[str] = None


class DocPopulate(DocQueryHandlerBase):
    """ Population of references

        * None: nothing to populate
        * 'a b.c': paths
        * [ 'a', {'path': 'b', 'ref': 'widgets'} ]
    """

    query_object_section_name = '$populate'

    def __init__(self, model, bags):
        super(DocPopulate, self).__init__(model, bags)

        # On input
        #: { path: PopulatePath }
        self.paths = OrderedDict()

    def _input(self, spec):
        if not spec:
            return []

        # String syntax
        if isinstance(spec, str):
            spec = spec.replace(',', ' ').split()
        # A single object
        elif isinstance(spec, dict):
            spec = [spec]

        if not isinstance(spec, (list, tuple)):
            raise MalformedDescriptor('{name} must be either a list, or a string; {type} provided.'
                                      .format(name=self.query_object_section_name, type=type(spec)))

        paths = []
        for item in spec:
            if isinstance(item, str):
                paths.append(PopulatePath(item))
            elif isinstance(item, dict) and isinstance(item.get('path'), str):
                paths.append(PopulatePath(item['path'], item.get('ref')))
            else:
                raise MalformedDescriptor('{} items must be paths, or {{path, ref}} objects'
                                          .format(self.query_object_section_name))

        # Validate
        populator = self.docquery.db.populator
        for p in paths:
            populator.resolve_path(self.model, self.bags, p.path, p.ref)
        return paths

    def input(self, populate):
        super(DocPopulate, self).input(populate)
        self.merge(populate)
        return self

    def merge(self, populate):
        """ Add more paths to populate """
        for p in self._input(populate):
            # The first mention wins
            self.paths.setdefault(p.path, p)
        return self

    def is_input_empty(self):
        return not self.paths

    def alter_fetch(self, fetch):
        fetch.populate = list(self.paths.values())
        return fetch

    def get_final_input_value(self):
        return [p.path if p.ref is None else dict(path=p.path, ref=p.ref)
                for p in self.paths.values()]
