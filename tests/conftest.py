"""Top level test fixtures."""

from __future__ import annotations

import sqlite3
import typing as t
from unittest import mock

import pytest

from sqlio.datasource import DataSourceConfig
from sqlio.engine import DirectRunner

if t.TYPE_CHECKING:
    from pathlib import Path


class FakeDBError(Exception):
    """A driver error carrying a SQLSTATE."""

    def __init__(self, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate


class FakeCursor:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.arraysize = 1
        self._pending: list[tuple] = []

    def execute(self, statement: str, *args: t.Any) -> None:
        self.connection.record("execute", statement, args)
        self.connection.maybe_fail()
        self._pending = list(self.connection.rows)

    def executemany(self, statement: str, seq_of_parameters: t.Iterable) -> None:
        self.connection.record("executemany", statement, list(seq_of_parameters))
        self.connection.maybe_fail()

    def fetchmany(self, size: int) -> list[tuple]:
        self.connection.record("fetchmany", size)
        batch, self._pending = self._pending[:size], self._pending[size:]
        return batch

    def close(self) -> None:
        self.connection.record("cursor.close")


class FakeConnection:
    """A DB-API connection recording every call made on it.

    ``failures`` holds the outcome of successive ``execute``/``executemany`` calls:
    an exception to raise, or None to succeed. Calls past the end succeed.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.failures: list[BaseException | None] = []
        self.rows: list[tuple] = []
        self.autocommit = True

    def record(self, name: str, *args: t.Any) -> None:
        self.calls.append((name, *args))

    def maybe_fail(self) -> None:
        if self.failures:
            error = self.failures.pop(0)
            if error is not None:
                raise error

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def cursor(self) -> FakeCursor:
        self.record("cursor")
        return FakeCursor(self)

    def commit(self) -> None:
        self.record("commit")

    def rollback(self) -> None:
        self.record("rollback")

    def close(self) -> None:
        self.record("close")


class FakeConnectionSource:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self.checkouts = 0
        self.released = 0
        self.closed = False

    def get_connection(self) -> FakeConnection:
        self.checkouts += 1
        return self.connection

    def release(self, connection: FakeConnection) -> None:
        assert connection is self.connection
        self.released += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def db_error() -> type[FakeDBError]:
    return FakeDBError


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_source(
    fake_connection: FakeConnection,
) -> t.Generator[FakeConnectionSource, None, None]:
    """Make every data source hand out the fake connection."""
    source = FakeConnectionSource(fake_connection)
    with mock.patch.object(
        DataSourceConfig,
        "build_connection_source",
        return_value=source,
    ):
        yield source


@pytest.fixture
def runner() -> DirectRunner:
    return DirectRunner(parallelism=3, bundle_size=4)


@pytest.fixture
def people_db(tmp_path: Path) -> Path:
    """A SQLite database with a five row ``t`` table."""
    path = tmp_path / "people.db"
    with sqlite3.connect(path) as conn:
        conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        conn.executemany(
            "INSERT INTO t (id, name) VALUES (?, ?)",
            [(1, "ada"), (2, "grace"), (3, "edsger"), (4, "barbara"), (5, "alan")],
        )
    conn.close()
    return path
