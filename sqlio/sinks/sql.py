"""Batched SQL write operator with deadlock-aware retry."""

from __future__ import annotations

import dataclasses
import typing as t
from contextlib import ExitStack, closing

import backoff

from sqlio import metrics
from sqlio.datasource import DataSourceConfig
from sqlio.engine.core import Operator
from sqlio.engine.transforms import ParDo, Transform
from sqlio.exceptions import ConfigValidationError
from sqlio.helpers._transfer import function_errors
from sqlio.retry import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_ATTEMPTS, is_deadlock

if t.TYPE_CHECKING:
    from backoff.types import Details

    from sqlio.connectors.sql import PooledConnectionSource
    from sqlio.engine.collection import PartitionedCollection
    from sqlio.helpers.types import ParameterBinder, Parameters, RetryPredicate

_T = t.TypeVar("_T")

DEFAULT_BATCH_SIZE = 1000


@dataclasses.dataclass(frozen=True)
class WriteSpec(t.Generic[_T]):
    """A batched SQL write.

    Args:
        data_source: Where connections come from.
        statement: The statement, with placeholders in the driver's paramstyle.
        parameter_binder: Produces the statement parameters for each record.
        batch_size: Records buffered before a flush.
        retry_predicate: Returns True for errors that may be rolled back and
            retried. Defaults to deadlocks and serialization failures.
        initial_backoff: Seconds to wait before the first retry. The wait doubles
            after every retry.
        max_attempts: Flush attempts, including the first one.

    Raises:
        ConfigValidationError: If a required field is missing or invalid.
    """

    data_source: DataSourceConfig | None = None
    statement: str | None = None
    parameter_binder: ParameterBinder[_T] | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    retry_predicate: RetryPredicate = is_deadlock
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:  # noqa: D105
        errors = self.validate()
        if errors:
            summary = f"Invalid write: {'; '.join(errors)}"
            raise ConfigValidationError(summary, errors=errors)

    def validate(self) -> list[str]:
        """Collect every problem with this write.

        Returns:
            A list of validation errors, empty if the write is usable.
        """
        errors: list[str] = []
        if not isinstance(self.data_source, DataSourceConfig):
            errors.append("data_source is required and must be a DataSourceConfig")
        if not self.statement:
            errors.append("statement is required")
        if self.batch_size < 1:
            errors.append(f"batch_size must be positive, got {self.batch_size}")
        if self.initial_backoff < 0:
            errors.append(
                f"initial_backoff must not be negative, got {self.initial_backoff}",
            )
        if self.max_attempts < 1:
            errors.append(f"max_attempts must be positive, got {self.max_attempts}")
        errors.extend(function_errors(self.parameter_binder, "parameter_binder"))
        errors.extend(function_errors(self.retry_predicate, "retry_predicate"))
        return errors

    def with_batch_size(self, batch_size: int) -> WriteSpec[_T]:
        """Return a copy flushing every ``batch_size`` records.

        Args:
            batch_size: Records per flush.

        Returns:
            A new write.
        """
        return dataclasses.replace(self, batch_size=batch_size)

    def with_retry_predicate(self, retry_predicate: RetryPredicate) -> WriteSpec[_T]:
        """Return a copy classifying retryable errors with ``retry_predicate``.

        Args:
            retry_predicate: Returns True for errors that may be retried.

        Returns:
            A new write.
        """
        return dataclasses.replace(self, retry_predicate=retry_predicate)


def disable_autocommit(connection: t.Any) -> None:  # noqa: ANN401
    """Turn off autocommit on a DB-API connection, where the driver has it.

    Pooled connections are unwrapped through ``driver_connection``. Drivers expose
    autocommit either as an attribute or, like PyMySQL, as a method.

    Args:
        connection: A DB-API connection or a pool proxy for one.
    """
    target = getattr(connection, "driver_connection", None) or connection
    if not hasattr(target, "autocommit"):
        return
    if callable(target.autocommit):
        target.autocommit(False)  # noqa: FBT003
    else:
        target.autocommit = False


class WriteFn(Operator[_T, None]):
    """Buffer records and write them in batches on a per-bundle connection.

    A failed flush is rolled back and retried, with exponential backoff, while
    ``retry_predicate`` accepts the error. Every retry resends the whole batch.

    Targets whose ``connection_properties`` is the compatibility marker get one
    ``execute`` per record instead, with no commit, rollback, or retry.
    """

    name = "write"

    def __init__(self, spec: WriteSpec[_T]) -> None:
        """Initialize the operator.

        Args:
            spec: The write to perform.
        """
        super().__init__()
        self.spec = spec
        self._source: PooledConnectionSource | None = None
        self._connection: t.Any = None
        self._batch: list[_T] = []
        self._meters: ExitStack | None = None
        self._record_counter: metrics.Counter | None = None
        self._batch_counter: metrics.Counter | None = None
        self._retry_counter: metrics.Counter | None = None

    @property
    def data_source(self) -> DataSourceConfig:
        """The data source records are written to.

        Returns:
            The data source descriptor.
        """
        return t.cast(DataSourceConfig, self.spec.data_source)

    @property
    def compatibility_mode(self) -> bool:
        """Whether the target lacks batch and transaction support.

        Returns:
            True if writes go out one statement at a time without transactions.
        """
        return self.data_source.compatibility_mode

    @property
    def pending(self) -> int:
        """Number of buffered records.

        Returns:
            The current batch size.
        """
        return len(self._batch)

    def setup(self) -> None:
        """Create the connection source."""
        self._meters = ExitStack()
        self._record_counter = self._meters.enter_context(
            metrics.record_counter(self.name),
        )
        self._batch_counter = self._meters.enter_context(
            metrics.batch_counter(self.name),
        )
        self._retry_counter = self._meters.enter_context(
            metrics.retry_counter(self.name),
        )
        self._source = self.data_source.build_connection_source()
        self.logger.info(
            "Opened write connection source to %s",
            self.data_source.display_data(),
        )

    def start_bundle(self) -> None:
        """Check out a connection and start an empty batch."""
        self._batch = []
        source = t.cast("PooledConnectionSource", self._source)
        self._connection = source.get_connection()
        if not self.compatibility_mode:
            disable_autocommit(self._connection)

    def process(self, element: _T) -> None:
        """Buffer one record, flushing when the batch is full.

        Args:
            element: The record.
        """
        self._batch.append(element)
        if len(self._batch) >= self.spec.batch_size:
            self.flush()

    def finish_bundle(self) -> None:
        """Flush the remaining records, then release the connection."""
        try:
            self.flush()
        finally:
            self._release()

    def abort_bundle(self) -> None:
        """Drop unflushed records and release the connection."""
        if self._batch:
            self.logger.warning(
                "Dropping %d unflushed record(s) of an aborted bundle",
                len(self._batch),
            )
        self._batch = []
        self._release()

    def teardown(self) -> None:
        """Close the connection source."""
        try:
            self._release()
        finally:
            if self._source is not None:
                self._source.close()
                self._source = None
                self.logger.info("Closed write connection source")
            if self._meters is not None:
                self._meters.close()
                self._meters = None
            self._record_counter = self._batch_counter = self._retry_counter = None

    def flush(self) -> None:
        """Write the buffered records. The batch is cleared only on success."""
        if not self._batch:
            return

        records = self._batch
        with metrics.flush_timer(self.name, records=len(records)):
            if self.compatibility_mode:
                self._execute_each(records)
            else:
                self.request_decorator(self._execute_batch)(records)

        self._batch = []
        if self._record_counter is not None:
            self._record_counter.increment(len(records))
        if self._batch_counter is not None:
            self._batch_counter.increment()
        self.logger.debug("Flushed %d record(s)", len(records))

    def request_decorator(
        self,
        func: t.Callable[[list[_T]], None],
    ) -> t.Callable[[list[_T]], None]:
        """Wrap a flush attempt with rollback and retry.

        Args:
            func: Function writing a whole batch.

        Returns:
            The decorated function.
        """
        decorator: t.Callable = backoff.on_exception(
            self.backoff_wait_generator,
            Exception,
            max_tries=self.backoff_max_tries,
            giveup=self.is_fatal,
            on_backoff=self.backoff_handler,
            jitter=None,
        )
        return decorator(func)

    def backoff_wait_generator(self) -> t.Generator[float, None, None]:
        """The wait generator used by the backoff decorator on flush failure.

        Returns:
            An exponential schedule starting at ``initial_backoff`` seconds.
        """
        return backoff.expo(factor=self.spec.initial_backoff)  # type: ignore[no-any-return]

    def backoff_max_tries(self) -> int:
        """The number of flush attempts before giving up.

        Returns:
            Number of attempts.
        """
        return self.spec.max_attempts

    def is_fatal(self, error: Exception) -> bool:
        """Decide whether a flush failure ends the retry loop.

        Args:
            error: The exception raised by the attempt.

        Returns:
            True if ``retry_predicate`` rejects the error.
        """
        return not self.spec.retry_predicate(error)

    def backoff_handler(self, details: Details) -> None:
        """Roll back the failed attempt before the next one.

        Args:
            details: backoff invocation details
                https://github.com/litl/backoff#event-handlers
        """
        self.logger.warning(
            "Deadlock detected, retrying in %.1f seconds (attempt %d of %d)",
            details.get("wait", 0.0),
            details["tries"] + 1,
            self.spec.max_attempts,
            exc_info=details.get("exception"),  # type: ignore[arg-type]
        )
        if self._retry_counter is not None:
            self._retry_counter.increment()
        self._connection.rollback()

    def _bind(self, record: _T) -> Parameters:
        binder = t.cast("ParameterBinder[_T]", self.spec.parameter_binder)
        parameters = binder(record)
        return () if parameters is None else parameters

    def _execute_batch(self, records: list[_T]) -> None:
        with closing(self._connection.cursor()) as cursor:
            cursor.executemany(
                self.spec.statement,
                [self._bind(record) for record in records],
            )
        self._connection.commit()

    def _execute_each(self, records: list[_T]) -> None:
        with closing(self._connection.cursor()) as cursor:
            for record in records:
                cursor.execute(self.spec.statement, self._bind(record))

    def _release(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None and self._source is not None:
            self._source.release(connection)


class Write(Transform[_T, None]):
    """Write every element of a collection to a SQL sink.

    Example::

        spec = WriteSpec(
            data_source=DataSourceConfig(url="sqlite:///people.db"),
            statement="INSERT INTO t (id, name) VALUES (?, ?)",
            parameter_binder=lambda person: (person["id"], person["name"]),
        )
        runner.begin() | Create(people) | Write(spec)
    """

    def __init__(self, spec: WriteSpec[_T]) -> None:
        """Initialize the transform.

        Args:
            spec: The write.
        """
        self.spec = spec

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[_T],
    ) -> PartitionedCollection[None]:
        return collection | ParDo(WriteFn(self.spec))
