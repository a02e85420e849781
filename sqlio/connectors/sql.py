"""Pooled DB-API connection sources backed by SQLAlchemy."""

from __future__ import annotations

import logging
import time
import typing as t
from dataclasses import dataclass

import sqlalchemy
import sqlalchemy.event
import sqlalchemy.exc
from sqlalchemy.pool import QueuePool

from sqlio.connectors.base import BaseConnector
from sqlio.exceptions import ConnectionSourceError

if t.TYPE_CHECKING:
    from sqlalchemy.engine import URL, Engine
    from sqlalchemy.pool import ConnectionPoolEntry, Pool, PoolProxiedConnection

    from sqlio.helpers.types import ConnectionFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoolSettings:
    """Shape of the pool each worker instance owns."""

    max_total: int = 1
    min_idle: int = 0
    min_evictable_idle: float = 10.0
    soft_min_evictable_idle: float = 30.0
    #: Roll connections back when they return to the pool.
    reset_on_return: bool = True

    @property
    def eviction_threshold(self) -> float:
        """Seconds a connection may sit idle before it is replaced on checkout.

        Idle connections beyond ``min_idle`` are evictable at the soft threshold
        as well, so with ``min_idle=0`` the lower of the two applies.

        Returns:
            The idle threshold in seconds.
        """
        if self.min_idle < self.max_total:
            return min(self.min_evictable_idle, self.soft_min_evictable_idle)
        return self.min_evictable_idle


class IdleEviction:
    """Pool listener replacing connections that stayed idle for too long."""

    INFO_KEY = "sqlio_idle_since"

    def __init__(
        self,
        max_idle: float,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the listener.

        Args:
            max_idle: Seconds after which an idle connection is evicted.
            clock: Monotonic clock.
        """
        self.max_idle = max_idle
        self._clock = clock

    def attach(self, pool: Pool) -> None:
        """Register the listener on a pool.

        Args:
            pool: The pool to watch.
        """
        sqlalchemy.event.listen(pool, "checkin", self.on_checkin)
        sqlalchemy.event.listen(pool, "checkout", self.on_checkout)

    def on_checkin(
        self,
        dbapi_connection: t.Any,  # noqa: ANN401
        connection_record: ConnectionPoolEntry,
    ) -> None:
        """Remember when a connection went idle.

        Args:
            dbapi_connection: The DB-API connection, None if it was invalidated.
            connection_record: The pool's record for the connection.
        """
        if dbapi_connection is not None:
            connection_record.info[self.INFO_KEY] = self._clock()

    def on_checkout(
        self,
        dbapi_connection: t.Any,  # noqa: ANN401, ARG002
        connection_record: ConnectionPoolEntry,
        connection_proxy: PoolProxiedConnection,  # noqa: ARG002
    ) -> None:
        """Evict the connection if it has been idle past the threshold.

        Raising ``DisconnectionError`` makes the pool discard the connection and
        retry the checkout with a new one.

        Args:
            dbapi_connection: The DB-API connection.
            connection_record: The pool's record for the connection.
            connection_proxy: The proxy handed to the caller.

        Raises:
            DisconnectionError: If the connection was idle for too long.
        """
        idle_since = connection_record.info.pop(self.INFO_KEY, None)
        if idle_since is None:
            return

        idle = self._clock() - idle_since
        if idle >= self.max_idle:
            logger.debug("Evicting connection idle for %.1f seconds", idle)
            msg = f"Connection idle for {idle:.1f}s, evicting"
            raise sqlalchemy.exc.DisconnectionError(msg)


class PooledConnectionSource(BaseConnector["PoolProxiedConnection"]):
    """A single-connection pool owned by one worker instance.

    Connections handed out are SQLAlchemy pool proxies that behave as DB-API
    connections; closing one returns it to the pool.
    """

    def __init__(
        self,
        pool: Pool,
        *,
        settings: PoolSettings,
        engine: Engine | None = None,
    ) -> None:
        """Initialize the connection source.

        Args:
            pool: The pool connections are checked out from.
            settings: The pool shape.
            engine: The engine owning ``pool``, if any. Disposed on close.
        """
        super().__init__()
        self._pool = pool
        self._engine = engine
        self.settings = settings
        IdleEviction(settings.eviction_threshold).attach(pool)

    @classmethod
    def from_factory(
        cls,
        factory: ConnectionFactory,
        settings: PoolSettings,
    ) -> PooledConnectionSource:
        """Pool connections created by a caller-supplied factory.

        Args:
            factory: Zero-argument callable returning a DB-API connection.
            settings: The pool shape.

        Returns:
            A new connection source.
        """
        pool = QueuePool(
            factory,
            pool_size=settings.max_total,
            max_overflow=0,
            reset_on_return="rollback" if settings.reset_on_return else None,
        )
        return cls(pool, settings=settings)

    @classmethod
    def from_url(cls, url: URL, settings: PoolSettings) -> PooledConnectionSource:
        """Pool connections to a SQLAlchemy URL.

        Args:
            url: The database URL, including the driver name.
            settings: The pool shape.

        Returns:
            A new connection source.
        """
        engine = sqlalchemy.create_engine(
            url,
            poolclass=QueuePool,
            pool_size=settings.max_total,
            max_overflow=0,
            pool_reset_on_return="rollback" if settings.reset_on_return else None,
        )
        return cls(engine.pool, settings=settings, engine=engine)

    def get_connection(self) -> PoolProxiedConnection:
        """Check out the pooled connection.

        Returns:
            A DB-API connection proxy.

        Raises:
            ConnectionSourceError: If the source is closed or the database could not
                be reached.
        """
        if self.closed:
            msg = "Connection source is closed"
            raise ConnectionSourceError(msg)

        try:
            return self._pool.connect()
        except Exception as e:
            msg = f"Could not obtain a connection: {e}"
            raise ConnectionSourceError(msg) from e

    def release(self, connection: PoolProxiedConnection) -> None:
        """Return a connection to the pool.

        Args:
            connection: A connection returned by :meth:`get_connection`.
        """
        connection.close()

    def close(self) -> None:
        """Dispose of the pool and every connection it holds."""
        if self.closed:
            return
        super().close()
        if self._engine is not None:
            self._engine.dispose()
        else:
            self._pool.dispose()
