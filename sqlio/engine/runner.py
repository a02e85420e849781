"""In-process runner executing operators over partitioned collections."""

from __future__ import annotations

import functools
import logging
import typing as t
from concurrent.futures import ThreadPoolExecutor

from sqlio.engine.collection import PartitionedCollection
from sqlio.engine.core import Lifecycle
from sqlio.helpers._transfer import copy_for_worker, serialize_for_workers

if t.TYPE_CHECKING:
    from sqlio.coders import Coder
    from sqlio.engine.core import Operator
    from sqlio.engine.transforms import AsIterable

logger = logging.getLogger(__name__)

DEFAULT_PARALLELISM = 4
DEFAULT_BUNDLE_SIZE = 1000

_T = t.TypeVar("_T")


def _bundles(partition: t.Sequence[_T], bundle_size: int) -> t.Iterator[t.Sequence[_T]]:
    for start in range(0, len(partition), bundle_size):
        yield partition[start : start + bundle_size]


class DirectRunner:
    """Run operators locally, one worker instance per non-empty partition.

    Every worker instance gets its own copy of the operator, rebuilt from a single
    ``cloudpickle`` payload, so operators that cannot be serialized fail before
    any worker starts.
    """

    def __init__(
        self,
        parallelism: int = DEFAULT_PARALLELISM,
        bundle_size: int = DEFAULT_BUNDLE_SIZE,
        max_workers: int = 1,
    ) -> None:
        """Initialize the runner.

        Args:
            parallelism: Default number of partitions produced by redistribution.
            bundle_size: Maximum number of elements per bundle.
            max_workers: Number of threads running worker instances.

        Raises:
            ValueError: If any argument is not positive.
        """
        for name, value in (
            ("parallelism", parallelism),
            ("bundle_size", bundle_size),
            ("max_workers", max_workers),
        ):
            if value < 1:
                msg = f"{name} must be positive, got {value}"
                raise ValueError(msg)

        self.parallelism = parallelism
        self.bundle_size = bundle_size
        self.max_workers = max_workers

    def begin(self) -> PartitionedCollection[t.Any]:
        """Start a pipeline.

        Returns:
            An empty collection bound to this runner.
        """
        return PartitionedCollection((), runner=self)

    def run_operator(
        self,
        operator: Operator[t.Any, _T],
        collection: PartitionedCollection[t.Any],
        *,
        side_inputs: t.Sequence[AsIterable] = (),
        coder: Coder | None = None,
    ) -> PartitionedCollection[_T]:
        """Run ``operator`` over every partition of ``collection``.

        Side inputs are fully materialized before any worker instance starts.

        Args:
            operator: The operator to copy into each worker instance.
            collection: The input collection.
            side_inputs: Views of other collections handed to every worker instance.
            coder: The output coder.

        Returns:
            One output partition per non-empty input partition.
        """
        payload = serialize_for_workers(operator)
        side_values = tuple(view.materialize() for view in side_inputs)
        work = [partition for partition in collection.partitions if partition]
        logger.debug(
            "Running operator '%s' over %d partition(s)",
            operator.name,
            len(work),
        )

        run = functools.partial(self._run_worker, payload, side_values)
        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix="sqlio-worker",
        ) as executor:
            outputs = list(executor.map(run, work))

        return PartitionedCollection(outputs, runner=self, coder=coder)

    def _run_worker(
        self,
        payload: bytes,
        side_values: tuple[t.Any, ...],
        partition: t.Sequence[t.Any],
    ) -> list[t.Any]:
        operator = copy_for_worker(payload)
        outputs: list[t.Any] = []
        with Lifecycle(operator, side_values) as lifecycle:
            for bundle in _bundles(partition, self.bundle_size):
                with lifecycle.window() as bundle_outputs:
                    for element in bundle:
                        bundle_outputs.extend(lifecycle.process(element))
                outputs.extend(bundle_outputs)
        return outputs
