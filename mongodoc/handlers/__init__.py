"""

If you know how to query documents in MongoDB, you can query any storage with the same language.
mongodoc uses the familiar [MongoDB Query Operators](https://docs.mongodb.com/manual/reference/operator/query/),
and adds population of references on top.


Query Descriptor Syntax
-----------------------

A query descriptor is a dict. Its `$directives` control the way the results are generated,
and every other key is a filter condition:

* `$collection`: the collection to query (required)
* `$id`: fetch a single document by its id. Other filter conditions are ignored.
* `$select`: [Select Operation](#select-operation) selects the fields to be loaded
* `$sort`: [Sort Operation](#sort-operation) determines the order of the results
* `$populate`: [Populate Operation](#populate-operation) replaces references with documents
* `$skip`, `$limit`: [Paging](#limit-operation)
* `$count`: [Counting](#count-operation) counts the documents without producing results
* `$one`: return a single document instead of a list
* `$data`: context data for the hooks
* `$err_not_found`: raise NotFound when `$id` or `$one` finds nothing (default: yes)
* `$plain`: return plain dicts instead of Documents
* `$dirty`: mark every field of the returned documents as modified

An example descriptor is:

```python
{
  '$collection': 'users',
  '$select': ['name', 'favourite'],  # Only fetch these fields
  '$sort': '-name',  # Sort by name, descending
  '$populate': 'favourite',  # Replace the `favourite` id with the widget
  'role': 'user',  # Filter condition
  'favourite.color': 'blue',  # Filter by a field of the referenced widget
  '$limit': 100,  # Display 100 per page
  '$skip': 10,  # Skip first 10 documents
}
```

Detailed syntax for every operation is provided in the relevant sections.
"""

from .select import DocSelect
from .sort import DocSort
from .filter import DocFilter
from .populate import DocPopulate, \
    PopulatePath
from .limit import DocLimit
from .count import DocCount
