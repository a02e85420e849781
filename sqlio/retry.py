"""Classification of SQL errors that are safe to retry."""

from __future__ import annotations

import typing as t

#: SQLSTATE relational engines use for serialization failures and deadlocks.
DEADLOCK_SQLSTATE = "40001"

#: MySQL error numbers that carry no SQLSTATE attribute, mapped to their SQLSTATE.
_MYSQL_ERRNO_SQLSTATES = {1213: DEADLOCK_SQLSTATE}
_MYSQL_DRIVERS = frozenset(("pymysql", "MySQLdb"))

DEFAULT_INITIAL_BACKOFF = 5.0
DEFAULT_MAX_ATTEMPTS = 5


def get_sqlstate(error: BaseException) -> str | None:
    """Extract the five-character SQLSTATE from a driver error.

    Drivers expose it differently: ``sqlstate`` (psycopg 3, several ODBC and
    JDBC bridges), ``pgcode`` (psycopg2), or ``diag.sqlstate``. PyMySQL and
    mysqlclient only report an error number in ``args[0]``; a deadlock (1213) is
    mapped to its SQLSTATE. Errors wrapped by SQLAlchemy are unwrapped through
    ``orig``.

    Args:
        error: The raised exception.

    Returns:
        The SQLSTATE, or None if the driver does not report one.
    """
    seen: set[int] = set()
    current: t.Any = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for attr in ("sqlstate", "pgcode"):
            value = getattr(current, attr, None)
            if isinstance(value, str) and value:
                return value
        diag = getattr(current, "diag", None)
        value = getattr(diag, "sqlstate", None)
        if isinstance(value, str) and value:
            return value
        if (sqlstate := _mysql_sqlstate(current)) is not None:
            return sqlstate
        current = getattr(current, "orig", None)
    return None


def _mysql_sqlstate(error: t.Any) -> str | None:  # noqa: ANN401
    if type(error).__module__.partition(".")[0] not in _MYSQL_DRIVERS:
        return None
    args = getattr(error, "args", ())
    if args and isinstance(args[0], int):
        return _MYSQL_ERRNO_SQLSTATES.get(args[0])
    return None


def is_deadlock(error: BaseException) -> bool:
    """Default retry predicate: retry deadlocks and serialization failures.

    Args:
        error: The exception raised by a flush.

    Returns:
        True if the error carries SQLSTATE ``40001``.
    """
    return get_sqlstate(error) == DEADLOCK_SQLSTATE
