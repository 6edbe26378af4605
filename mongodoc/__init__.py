"""
mongodoc is a convenience layer over a document storage:
schemas, references between collections, hooks, and MongoDB-style queries.

Declare your collections once, and every query is a single dict:

```python
db.query({
    '$collection': 'users',
    '$select': ['name', 'favourite'],  # only load these fields
    '$sort': '-name',  # sort by `name` DESC
    '$populate': 'favourite',  # replace the `favourite` id with the widget it refers to
    'favourite.color': 'blue',  # filter by the widget's color
    '$limit': 10,  # limit to 10 documents
})
```

Documents come back as dicts that know which of their fields were modified,
and can save just those.
"""

# Exceptions that are used here and there
from .exc import *

# Schemas are declared with a dict of fields
from .schema import Schema, Field, FIELD_TYPE

# mongodoc needs to know where the references of your documents are.
# All this is handled by the following class:
from .bag import ForeignKeysBag, ForeignKey, FK_TYPE, extract_fks

# The heart of mongodoc are the handlers:
# that's where your descriptors are converted into storage fetches!
from . import handlers

# DocQuery is the man that parses your query descriptor and runs it with the handlers
from .query import DocQuery, Fetch

# References are replaced with documents by the Populator, one fetch per collection
from .populate import Populator

# Hooks and listeners for every operation
from .hooks import HookRegistry, Firing, FIRE_STATE

# Collections, their documents, and the database that keeps them all
from .document import Document
from .model import Model, Virtual
from .builder import QueryBuilder
from .iterator import QueryIterator
from .crud import CrudHelper
from .db import Database

# Storage drivers
from .drivers import StorageDriver, MemoryDriver, SqlAlchemyDriver

# Helpers
# Settings for the Database
from .util import DatabaseSettingsDict
# Modification tracking
from .util import ModifiedTracker
# The difference between two documents, as a patch
from .util import diff
