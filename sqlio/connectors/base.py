"""Base class for all connection sources."""

from __future__ import annotations

import abc
import typing as t
from contextlib import contextmanager

if t.TYPE_CHECKING:
    from types import TracebackType

_T = t.TypeVar("_T")


class BaseConnector(abc.ABC, t.Generic[_T]):
    """Base class for all connection sources.

    A connector hands out connections of type ``_T`` and owns whatever is needed
    to create them. Connectors are closable: once :meth:`close` has been called
    no further connections are handed out.
    """

    def __init__(self) -> None:
        """Initialize the connector."""
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called.

        Returns:
            True if the connector is closed.
        """
        return self._closed

    @contextmanager
    def connect(self) -> t.Generator[_T, None, None]:
        """Check out a connection and release it on exit.

        Yields:
            A connection object.
        """
        connection = self.get_connection()
        try:
            yield connection
        finally:
            self.release(connection)

    @abc.abstractmethod
    def get_connection(self) -> _T:
        """Check out a connection."""
        ...

    @abc.abstractmethod
    def release(self, connection: _T) -> None:
        """Give a connection back.

        Args:
            connection: A connection returned by :meth:`get_connection`.
        """
        ...

    def close(self) -> None:
        """Release everything the connector owns."""
        self._closed = True

    def __enter__(self) -> BaseConnector[_T]:  # noqa: D105
        return self

    def __exit__(  # noqa: D105
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
