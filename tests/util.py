from unittest import mock

from sqlalchemy import event


class QueryCounter:
    """ Count the SQL statements an engine executes

    ```python
    with QueryCounter(db.driver.engine) as q:
        db.query({'$collection': 'users'})
    assert q.n == 1
    ```
    """

    def __init__(self, engine):
        self.engine = engine
        self.n = 0

    def _on_execute(self, conn, cursor, statement, parameters, context, executemany):
        self.n += 1

    def _done(self):
        pass

    def dump(self):
        pass

    def __enter__(self):
        event.listen(self.engine, 'after_cursor_execute', self._on_execute)
        return self

    def __exit__(self, *exc):
        event.remove(self.engine, 'after_cursor_execute', self._on_execute)
        if exc[0] is not None:
            self.dump()
        else:
            self._done()
        return False


class QueryLogger(QueryCounter, list):
    """ Keep every statement: [(statement, parameters)] """

    def _on_execute(self, conn, cursor, statement, parameters, context, executemany):
        super(QueryLogger, self)._on_execute(conn, cursor, statement, parameters, context, executemany)
        self.append((statement, parameters))

    def dump(self):
        for i, (statement, parameters) in enumerate(self):
            print('-- #{}: {}\n{}'.format(i, parameters, statement))


class ExpectedQueryCounter(QueryLogger):
    """ Fail when the number of statements is not the expected one """

    def __init__(self, engine, expected_queries, comment):
        super(ExpectedQueryCounter, self).__init__(engine)
        self.expected_queries = expected_queries
        self.comment = comment

    def _done(self):
        if self.n != self.expected_queries:
            self.dump()
            raise AssertionError('{}: expected {} queries, got {}'
                                 .format(self.comment, self.expected_queries, self.n))


class DriverCallLogger(list):
    """ Log the calls of a storage driver method: [(collection, filter)] """

    def __init__(self, driver, method='find'):
        super(DriverCallLogger, self).__init__()
        self._patch = mock.patch.object(driver, method, side_effect=self._log)
        self._original = getattr(driver, method)

    def _log(self, collection, filter, *args, **kwargs):
        self.append((collection, filter))
        return self._original(collection, filter, *args, **kwargs)

    def collections(self):
        """ The list of collections the calls were made to """
        return [collection for collection, filter in self]

    def __enter__(self):
        self._patch.start()
        return self

    def __exit__(self, *exc):
        self._patch.stop()
        return False
