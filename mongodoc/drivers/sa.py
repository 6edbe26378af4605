""" Documents stored in an SQL database through SqlAlchemy

All collections share a single table:

    documents(collection VARCHAR, id VARCHAR, data JSON)

Conditions on `_id` are pushed down to SQL; the rest of the filter is evaluated in Python.
When the filter and the sort are on `_id` only, skip & limit go to SQL as well.
Otherwise every document of the collection that matches the `_id` conditions is loaded,
then paged in Python: fine for small collections, a full scan for large ones.
"""

import logging
from datetime import datetime
from typing import List, Mapping, Optional

from sqlalchemy import Column, MetaData, String, Table, TypeDecorator, JSON
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.engine import Engine

from . import matcher
from .base import FindOptions, StorageDriver
from ..schema import generate_id
from ..util.paths import set_path

logger = logging.getLogger(__name__)


class JSONDocument(TypeDecorator):
    """ JSON column that keeps `datetime` values

    Dates are stored as {"$date": "<isoformat>"}
    """
    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _encode(value)

    def process_result_value(self, value, dialect):
        return _decode(value)


def _encode(value):
    if isinstance(value, datetime):
        return {'$date': value.isoformat()}
    elif isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value):
    if isinstance(value, dict):
        if len(value) == 1 and '$date' in value:
            return datetime.fromisoformat(value['$date'])
        return {k: _decode(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_decode(v) for v in value]
    return value


class SqlAlchemyDriver(StorageDriver):
    """ Keeps documents in an SQL table

    find() with conditions other than on `_id`, or a sort by other fields, scans the whole collection:
    see the module docstring.

    Example:

        engine = create_engine('sqlite://')
        driver = SqlAlchemyDriver(engine)
        driver.create_all()
    """

    def __init__(self, engine: Engine, table_name: str = 'documents', metadata: MetaData = None):
        self.engine = engine
        self.metadata = metadata if metadata is not None else MetaData()
        self.table = Table(
            table_name, self.metadata,
            Column('collection', String(255), primary_key=True),
            Column('id', String(64), primary_key=True),
            Column('data', JSONDocument, nullable=False),
        )

    @property
    def thread_safe(self) -> bool:
        # A SQLite in-memory database lives in a single connection
        url = self.engine.url
        return not (url.get_backend_name() == 'sqlite' and url.database in (None, '', ':memory:'))

    def create_all(self):
        """ Create the documents table """
        self.metadata.create_all(self.engine)

    def find(self, collection: str, filter: Mapping, options: FindOptions = None) -> List[dict]:
        sort, skip, limit, projection = options or FindOptions()
        stmt = self._select(select(self.table.c.data), collection, filter)

        # Skip & limit go to SQL when nothing is left for Python to filter or sort
        pushed = _is_pushable(filter) and all(path == '_id' for path, direction in sort)
        if pushed:
            for path, direction in sort:
                stmt = stmt.order_by(self.table.c.id.desc() if direction < 0 else self.table.c.id)
            if skip:
                stmt = stmt.offset(skip)
            if limit is not None:
                stmt = stmt.limit(limit)

        with self.engine.connect() as conn:
            rows = conn.execute(stmt).scalars().all()
        docs = [doc for doc in rows if matcher.match(doc, filter)]
        logger.debug('find %s %r: %d documents', collection, filter, len(docs))
        if pushed:
            return matcher.apply_options(docs, projection=projection)
        return matcher.apply_options(docs, sort, skip, limit, projection)

    def count(self, collection: str, filter: Mapping) -> int:
        # Only `_id` conditions can be counted in SQL
        if not _is_pushable(filter):
            return len(self.find(collection, filter))
        stmt = self._select(select(func.count()).select_from(self.table), collection, filter)
        with self.engine.connect() as conn:
            return conn.execute(stmt).scalar()

    def insert(self, collection: str, fields: dict) -> dict:
        doc = dict(fields)
        doc.setdefault('_id', generate_id())
        with self.engine.begin() as conn:
            conn.execute(insert(self.table).values(collection=collection, id=doc['_id'], data=doc))
        return _decode(_encode(doc))

    def update(self, collection: str, id: str, fields: Mapping) -> Optional[dict]:
        with self.engine.begin() as conn:
            doc = conn.execute(
                select(self.table.c.data)
                .where(self.table.c.collection == collection, self.table.c.id == id)
            ).scalar()
            if doc is None:
                return None

            for path, value in fields.items():
                set_path(doc, path, value)

            conn.execute(
                update(self.table)
                .where(self.table.c.collection == collection, self.table.c.id == id)
                .values(data=doc)
            )
        return _decode(_encode(doc))

    def remove(self, collection: str, id: str) -> bool:
        with self.engine.begin() as conn:
            res = conn.execute(
                delete(self.table)
                .where(self.table.c.collection == collection, self.table.c.id == id)
            )
        return res.rowcount > 0

    def _select(self, stmt, collection: str, filter: Mapping):
        """ Add the collection and the `_id` conditions to a SELECT """
        stmt = stmt.where(self.table.c.collection == collection)
        id = filter.get('_id')
        if isinstance(id, str):
            stmt = stmt.where(self.table.c.id == id)
        elif isinstance(id, dict) and set(id) == {'$in'}:
            stmt = stmt.where(self.table.c.id.in_(list(id['$in'])))
        return stmt


def _is_pushable(filter: Mapping) -> bool:
    """ Can the filter be evaluated by SQL alone? """
    if not filter:
        return True
    id = filter.get('_id')
    return set(filter) == {'_id'} and (isinstance(id, str) or (isinstance(id, dict) and set(id) == {'$in'}))
