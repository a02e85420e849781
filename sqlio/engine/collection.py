"""Materialized, partitioned collections of elements."""

from __future__ import annotations

import itertools
import typing as t

from sqlio.coders import Coder, PickleCoder

if t.TYPE_CHECKING:
    from sqlio.engine.runner import DirectRunner
    from sqlio.engine.transforms import Transform

_T = t.TypeVar("_T")


class PartitionedCollection(t.Generic[_T]):
    """An immutable collection split into partitions.

    Each partition is processed by exactly one worker instance. Transforms are
    applied with ``|``::

        rows = runner.begin() | Create([1, 2, 3]) | ReadAll(spec)
    """

    def __init__(
        self,
        partitions: t.Iterable[t.Iterable[_T]],
        *,
        runner: DirectRunner,
        coder: Coder | None = None,
    ) -> None:
        """Initialize the collection.

        Args:
            partitions: The elements, grouped by partition.
            runner: The runner that executes transforms applied to the collection.
            coder: The element coder. Defaults to :class:`PickleCoder`.
        """
        self.partitions: tuple[tuple[_T, ...], ...] = tuple(
            tuple(partition) for partition in partitions
        )
        self.runner = runner
        self.coder: Coder = coder or PickleCoder()

    @property
    def num_partitions(self) -> int:
        """Number of partitions, including empty ones.

        Returns:
            The partition count.
        """
        return len(self.partitions)

    def elements(self) -> t.Iterator[_T]:
        """Iterate over every element, partition by partition.

        Returns:
            An iterator over the elements.
        """
        return itertools.chain.from_iterable(self.partitions)

    def with_coder(self, coder: Coder) -> PartitionedCollection[_T]:
        """Return the same elements with a different coder.

        Args:
            coder: The new element coder.

        Returns:
            A new collection.
        """
        return PartitionedCollection(self.partitions, runner=self.runner, coder=coder)

    def apply(self, transform: Transform[_T, t.Any]) -> t.Any:  # noqa: ANN401
        """Apply a transform to this collection.

        Args:
            transform: The transform.

        Returns:
            Whatever the transform produces, usually a new collection.
        """
        return transform.expand(self)

    __or__ = apply

    def __len__(self) -> int:  # noqa: D105
        return sum(len(partition) for partition in self.partitions)

    def __repr__(self) -> str:  # noqa: D105
        return (
            f"{type(self).__name__}(elements={len(self)}, "
            f"partitions={self.num_partitions}, coder={type(self.coder).__name__})"
        )
