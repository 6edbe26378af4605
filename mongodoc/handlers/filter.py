"""
### Filter Operation

Every key of the query descriptor that is not a `$directive` is a filter condition.
Conditions use the [MongoDB Query Operators](https://docs.mongodb.com/manual/reference/operator/query/):

```python
db.query({
    '$collection': 'users',
    # all conditions are AND-ed together
    'role': 'admin',
    'settings.lang': {'$in': ['en', 'fr']},
})
```

See `mongodoc.drivers.matcher` for the list of supported operators.
The same conditions can also be given as a dict under the `$filter` directive.

#### Lookup by id
`$id` looks a single document up by its id. All other filter conditions are ignored,
and the result is a single document (implies `$one`).

#### Filtering by referenced documents
A condition on a field of a referenced document, like `favourite.color`, cannot be given to the storage:
it only holds the id of the widget. Such conditions are evaluated after population:
the reference is populated automatically, and the documents are filtered in memory.

A condition on the reference itself (`favourite`, `items`) is compared against the stored ids.
"""

from .base import DocQueryHandlerBase
from ..drivers.matcher import BOOLEAN_OPERATORS
from ..exc import MalformedDescriptor


class DocFilter(DocQueryHandlerBase):
    """ MongoDB-style filtering

        Splits the conditions into those that go to the storage, and those that need population first.
    """

    query_object_section_name = '$filter'

    def __init__(self, model, bags, force_filter=None):
        """ Init a filter

        :param force_filter: A filter that's always applied. A dict, or a callable(model) -> dict
        """
        super(DocFilter, self).__init__(model, bags)

        # Settings
        self.force_filter = force_filter

        # On input
        #: Conditions for the storage
        self.filter = {}
        #: Conditions to evaluate after population
        self.post_filter = {}
        #: Reference paths that have to be populated for `post_filter`
        self.required_populate = set()

    def input_prepare_query_object(self, query_object):
        """ Collect the filter conditions under '$filter' """
        if query_object.get('$id') is not None:
            # Search by one id only: ignore other fields
            query_object['$filter'] = {'_id': query_object['$id']}
            query_object['$one'] = True
            for key in [k for k in query_object if not k.startswith('$') or k in BOOLEAN_OPERATORS]:
                query_object.pop(key)
        else:
            conditions = query_object.get('$filter') or {}
            if not isinstance(conditions, dict):
                raise MalformedDescriptor('{} must be an object'.format(self.query_object_section_name))
            conditions = dict(conditions)
            for key in [k for k in query_object if not k.startswith('$') or k in BOOLEAN_OPERATORS]:
                conditions[key] = query_object.pop(key)
            if conditions:
                query_object['$filter'] = conditions
        return query_object

    def input(self, criteria):
        super(DocFilter, self).input(criteria)
        criteria = criteria or {}

        if not isinstance(criteria, dict):
            raise MalformedDescriptor('{} must be an object'.format(self.query_object_section_name))

        # force_filter
        force_filter = self.force_filter(self.model) if callable(self.force_filter) else self.force_filter
        if force_filter:
            criteria = {'$and': [force_filter, criteria]} if criteria else dict(force_filter)

        # Split
        for key, value in criteria.items():
            if key.startswith('$') and key not in BOOLEAN_OPERATORS:
                raise MalformedDescriptor('Unsupported operator: {}'.format(key))

            refs = self._get_references(key, value)
            if refs:
                self.post_filter[key] = value
                self.required_populate.update(refs)
            else:
                self.filter[key] = value
        return self

    def _get_references(self, key, value) -> set:
        """ Get the reference paths that a condition looks through """
        if key in BOOLEAN_OPERATORS:
            if not isinstance(value, (list, tuple)):
                raise MalformedDescriptor('{} requires an array of conditions'.format(key))
            refs = set()
            for sub_criteria in value:
                if not isinstance(sub_criteria, dict):
                    raise MalformedDescriptor('{} requires an array of conditions'.format(key))
                for sub_key, sub_value in sub_criteria.items():
                    refs.update(self._get_references(sub_key, sub_value))
            return refs

        fk = self.bags.resolving_ref(key)
        return {fk.path} if fk is not None else set()

    def is_input_empty(self):
        return not self.filter and not self.post_filter

    def alter_fetch(self, fetch):
        fetch.filter = self.filter
        fetch.post_filter = self.post_filter
        return fetch

    def get_final_input_value(self):
        return dict(self.filter, **self.post_filter)
