"""Primitive transforms over partitioned collections."""

from __future__ import annotations

import abc
import random
import typing as t

from sqlio.engine.collection import PartitionedCollection
from sqlio.engine.core import Operator

if t.TYPE_CHECKING:
    from sqlio.coders import Coder

_In = t.TypeVar("_In")
_Out = t.TypeVar("_Out")


class Transform(abc.ABC, t.Generic[_In, _Out]):
    """Turns one collection into another."""

    @property
    def label(self) -> str:
        """Display name of the transform.

        Returns:
            The class name.
        """
        return type(self).__name__

    @abc.abstractmethod
    def expand(self, collection: PartitionedCollection[_In]) -> t.Any:  # noqa: ANN401
        """Apply the transform.

        Args:
            collection: The input collection.

        Returns:
            The output, usually a new collection.
        """


class Create(Transform[t.Any, _Out]):
    """Produce a fixed set of elements as a single partition."""

    def __init__(self, values: t.Iterable[_Out], coder: Coder | None = None) -> None:
        """Initialize the transform.

        Args:
            values: The elements.
            coder: The element coder.
        """
        self.values = list(values)
        self.coder = coder

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[t.Any],
    ) -> PartitionedCollection[_Out]:
        return PartitionedCollection(
            [self.values],
            runner=collection.runner,
            coder=self.coder,
        )


class ParDo(Transform[_In, _Out]):
    """Run an operator over every element of a collection."""

    def __init__(
        self,
        operator: Operator[_In, _Out],
        *,
        side_inputs: t.Sequence[AsIterable] = (),
        coder: Coder | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            operator: The operator copied into each worker instance.
            side_inputs: Side input views, available as ``operator.side_inputs``.
            coder: The output coder.
        """
        self.operator = operator
        self.side_inputs = tuple(side_inputs)
        self.coder = coder

    @property
    def label(self) -> str:  # noqa: D102
        return f"ParDo({self.operator.name})"

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[_In],
    ) -> PartitionedCollection[_Out]:
        return collection.runner.run_operator(
            self.operator,
            collection,
            side_inputs=self.side_inputs,
            coder=self.coder,
        )


class _FilterFn(Operator[_In, _In]):
    name = "filter"

    def __init__(self, predicate: t.Callable[[_In], bool]) -> None:
        super().__init__()
        self.predicate = predicate

    def process(self, element: _In) -> t.Iterator[_In]:
        if self.predicate(element):
            yield element


class Filter(Transform[_In, _In]):
    """Keep the elements matching a predicate."""

    def __init__(self, predicate: t.Callable[[_In], bool]) -> None:
        """Initialize the transform.

        Args:
            predicate: Returns True for elements to keep.
        """
        self.predicate = predicate

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[_In],
    ) -> PartitionedCollection[_In]:
        return collection | ParDo(_FilterFn(self.predicate), coder=collection.coder)


class AsIterable:
    """Side input view of a whole collection."""

    def __init__(self, collection: PartitionedCollection[t.Any]) -> None:
        """Initialize the view.

        Args:
            collection: The collection to expose.
        """
        self.collection = collection

    def materialize(self) -> tuple[t.Any, ...]:
        """Compute the view's value.

        Returns:
            Every element of the collection.
        """
        return tuple(self.collection.elements())


class Reshuffle(Transform[_In, _In]):
    """Redistribute elements across partitions by a uniformly random key.

    Elements are encoded with the collection's coder on the way out of their
    partition and decoded on the way in, as they would be when sent to another
    worker.
    """

    def __init__(
        self,
        num_partitions: int | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            num_partitions: Output partitions. Defaults to the runner's parallelism.
            seed: Seed for the key generator.

        Raises:
            ValueError: If ``num_partitions`` is not positive.
        """
        if num_partitions is not None and num_partitions < 1:
            msg = f"num_partitions must be positive, got {num_partitions}"
            raise ValueError(msg)
        self.num_partitions = num_partitions
        self.seed = seed

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[_In],
    ) -> PartitionedCollection[_In]:
        num_partitions = self.num_partitions or collection.runner.parallelism
        rng = random.Random(self.seed)  # noqa: S311
        coder = collection.coder

        shards: list[list[bytes]] = [[] for _ in range(num_partitions)]
        for element in collection.elements():
            shards[rng.randrange(num_partitions)].append(coder.encode(element))

        return PartitionedCollection(
            ([coder.decode(encoded) for encoded in shard] for shard in shards),
            runner=collection.runner,
            coder=coder,
        )
