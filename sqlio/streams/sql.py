"""Read operators executing SQL queries and emitting one element per row."""

from __future__ import annotations

import dataclasses
import typing as t
from contextlib import closing

from sqlio import metrics
from sqlio.coders import Coder
from sqlio.datasource import DataSourceConfig
from sqlio.engine.core import Operator
from sqlio.engine.reparallelize import Reparallelize
from sqlio.engine.transforms import Create, ParDo, Transform
from sqlio.exceptions import ConfigValidationError, RowMappingError
from sqlio.helpers._transfer import function_errors

if t.TYPE_CHECKING:
    from sqlio.connectors.sql import PooledConnectionSource
    from sqlio.engine.collection import PartitionedCollection
    from sqlio.helpers.types import (
        ParameterBinder,
        Parameters,
        Row,
        RowMapper,
        StatementPreparator,
    )

_T = t.TypeVar("_T")

DEFAULT_FETCH_SIZE = 50_000


@dataclasses.dataclass(frozen=True)
class QuerySpec(t.Generic[_T]):
    """A parameterized SQL read.

    Args:
        data_source: Where connections come from.
        query: The query, with placeholders in the driver's paramstyle.
        row_mapper: Maps each result row to one output element.
        coder: Coder of the output elements.
        parameter_binder: Produces the query parameters for each input element.
            Returning None executes the query without parameters.
        fetch_size: Rows fetched from the cursor per round trip.
        statement_preparator: Produces the query parameters for :class:`Read`.

    Raises:
        ConfigValidationError: If a required field is missing or invalid.
    """

    data_source: DataSourceConfig | None = None
    query: str | None = None
    row_mapper: RowMapper[_T] | None = None
    coder: Coder | None = None
    parameter_binder: ParameterBinder[t.Any] | None = None
    fetch_size: int = DEFAULT_FETCH_SIZE
    statement_preparator: StatementPreparator | None = None

    def __post_init__(self) -> None:  # noqa: D105
        errors = self.validate()
        if errors:
            summary = f"Invalid query: {'; '.join(errors)}"
            raise ConfigValidationError(summary, errors=errors)

    def validate(self) -> list[str]:
        """Collect every problem with this query.

        Returns:
            A list of validation errors, empty if the query is usable.
        """
        errors: list[str] = []
        if not isinstance(self.data_source, DataSourceConfig):
            errors.append("data_source is required and must be a DataSourceConfig")
        if not self.query:
            errors.append("query is required")
        if not isinstance(self.coder, Coder):
            errors.append("coder is required and must be a Coder")
        if self.fetch_size < 1:
            errors.append(f"fetch_size must be positive, got {self.fetch_size}")
        errors.extend(function_errors(self.row_mapper, "row_mapper"))
        errors.extend(
            function_errors(self.parameter_binder, "parameter_binder", required=False),
        )
        errors.extend(
            function_errors(
                self.statement_preparator,
                "statement_preparator",
                required=False,
            ),
        )
        return errors

    def with_fetch_size(self, fetch_size: int) -> QuerySpec[_T]:
        """Return a copy fetching ``fetch_size`` rows per round trip.

        Args:
            fetch_size: Rows per round trip.

        Returns:
            A new query.
        """
        return dataclasses.replace(self, fetch_size=fetch_size)


class ReadFn(Operator[t.Any, _T]):
    """Execute the query once per input element on a per-worker connection."""

    name = "read"

    def __init__(self, spec: QuerySpec[_T]) -> None:
        """Initialize the operator.

        Args:
            spec: The query to execute.
        """
        super().__init__()
        self.spec = spec
        self._source: PooledConnectionSource | None = None
        self._connection: t.Any = None

    def setup(self) -> None:
        """Create the connection source and check out the worker's connection."""
        data_source = t.cast(DataSourceConfig, self.spec.data_source)
        self._source = data_source.build_connection_source()
        self._connection = self._source.get_connection()
        self.logger.info("Opened read connection to %s", data_source.display_data())

    def _parameters(self, element: t.Any) -> Parameters:  # noqa: ANN401
        binder = self.spec.parameter_binder
        return None if binder is None else binder(element)

    def _map(self, row: Row) -> _T:
        mapper = t.cast("RowMapper[_T]", self.spec.row_mapper)
        try:
            return mapper(row)
        except Exception as e:
            msg = f"Row mapper failed on row {row!r}: {e}"
            raise RowMappingError(msg, row) from e

    def process(self, element: t.Any) -> t.Iterator[_T]:  # noqa: ANN401
        """Run the query for one element and map every result row.

        Args:
            element: The input element the parameters are bound from.

        Yields:
            One output element per result row.

        Raises:
            RowMappingError: If the row mapper fails.
        """
        fetch_size = self.spec.fetch_size
        parameters = self._parameters(element)
        self.logger.debug("Executing query with parameters %r", parameters)

        with metrics.query_timer(self.name), metrics.record_counter(
            self.name,
        ) as counter, closing(self._connection.cursor()) as cursor:
            cursor.arraysize = fetch_size
            if parameters is None:
                cursor.execute(self.spec.query)
            else:
                cursor.execute(self.spec.query, parameters)

            while rows := cursor.fetchmany(fetch_size):
                for row in rows:
                    yield self._map(row)
                    counter.increment()

    def teardown(self) -> None:
        """Close the connection, then the connection source."""
        try:
            if self._connection is not None and self._source is not None:
                self._source.release(self._connection)
        finally:
            self._connection = None
            if self._source is not None:
                self._source.close()
                self._source = None
                self.logger.info("Closed read connection source")


class _PreparedBinder:
    """Binds parameters from a statement preparator, ignoring the element."""

    def __init__(self, preparator: StatementPreparator | None) -> None:
        self.preparator = preparator

    def __call__(self, element: t.Any) -> Parameters:  # noqa: ANN401, ARG002
        return None if self.preparator is None else self.preparator()


class ReadAll(Transform[t.Any, _T]):
    """Execute a query once per input element, emitting one element per row.

    The rows are redistributed across workers with :class:`Reparallelize`.

    Example::

        spec = QuerySpec(
            data_source=DataSourceConfig(url="sqlite:///people.db"),
            query="SELECT id, name FROM t WHERE id > ?",
            parameter_binder=lambda min_id: (min_id,),
            row_mapper=tuple,
            coder=PickleCoder(),
        )
        rows = runner.begin() | Create([1, 10]) | ReadAll(spec)
    """

    def __init__(
        self,
        spec: QuerySpec[_T],
        *,
        num_partitions: int | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            spec: The query.
            num_partitions: Partitions the rows are spread over.
            seed: Seed for the redistribution key.

        Raises:
            ConfigValidationError: If ``spec`` has no parameter binder.
        """
        if spec.parameter_binder is None:
            msg = "ReadAll requires a parameter_binder, use Read for a single query"
            raise ConfigValidationError(msg, errors=[msg])
        self.spec = spec
        self.num_partitions = num_partitions
        self.seed = seed

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[t.Any],
    ) -> PartitionedCollection[_T]:
        rows = collection | ParDo(ReadFn(self.spec), coder=self.spec.coder)
        return rows | Reparallelize(self.num_partitions, seed=self.seed)


class Read(Transform[t.Any, _T]):
    """Execute a query once, emitting one element per row.

    The query is driven by a single element, so one worker produces every row;
    the rows are then redistributed across workers.
    """

    def __init__(
        self,
        spec: QuerySpec[_T],
        *,
        num_partitions: int | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            spec: The query. Parameters come from ``spec.statement_preparator``.
            num_partitions: Partitions the rows are spread over.
            seed: Seed for the redistribution key.

        Raises:
            ConfigValidationError: If ``spec`` has a parameter binder.
        """
        if spec.parameter_binder is not None:
            msg = "Read takes no parameter_binder, use statement_preparator or ReadAll"
            raise ConfigValidationError(msg, errors=[msg])
        self.spec = spec
        self.num_partitions = num_partitions
        self.seed = seed

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[t.Any],
    ) -> PartitionedCollection[_T]:
        spec = dataclasses.replace(
            self.spec,
            parameter_binder=_PreparedBinder(self.spec.statement_preparator),
        )
        return (
            collection
            | Create([None])
            | ReadAll(spec, num_partitions=self.num_partitions, seed=self.seed)
        )
