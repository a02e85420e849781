"""Type aliases for the caller-supplied functions operators are built from.

Every function value is copied into each worker instance with ``cloudpickle``, so
whatever it captures must survive that copy: no open connections, locks, or file
handles. Create those lazily inside the function instead.
"""

from __future__ import annotations

import typing as t

_T = t.TypeVar("_T")
_T_contra = t.TypeVar("_T_contra", contravariant=True)

#: Positional (``qmark``/``format``) or named (``named``/``pyformat``) parameters,
#: in the paramstyle of the DB-API driver. ``None`` means no parameters.
Parameters: t.TypeAlias = t.Union[t.Sequence[t.Any], t.Mapping[str, t.Any], None]

#: A row as returned by a DB-API cursor.
Row: t.TypeAlias = t.Sequence[t.Any]


class DBAPIConnection(t.Protocol):
    """The subset of a PEP 249 connection used by the operators."""

    def cursor(self) -> t.Any: ...  # noqa: ANN401, D102

    def commit(self) -> None: ...  # noqa: D102

    def rollback(self) -> None: ...  # noqa: D102

    def close(self) -> None: ...  # noqa: D102


#: Zero-argument factory returning a new DB-API connection.
ConnectionFactory: t.TypeAlias = t.Callable[[], DBAPIConnection]

#: Maps one result row to one output element.
RowMapper: t.TypeAlias = t.Callable[[Row], _T]

#: Produces statement parameters for one element.
ParameterBinder: t.TypeAlias = t.Callable[[_T_contra], Parameters]

#: Produces statement parameters for a read with no input elements.
StatementPreparator: t.TypeAlias = t.Callable[[], Parameters]

#: Returns True when a failed flush may be rolled back and retried.
RetryPredicate: t.TypeAlias = t.Callable[[BaseException], bool]
