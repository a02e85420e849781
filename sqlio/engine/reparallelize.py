"""Fusion break between a serial producer and its consumers."""

from __future__ import annotations

import typing as t

from sqlio.engine.core import Operator
from sqlio.engine.transforms import AsIterable, Filter, ParDo, Reshuffle, Transform

if t.TYPE_CHECKING:
    from sqlio.engine.collection import PartitionedCollection

_T = t.TypeVar("_T")


def _never(element: t.Any) -> bool:  # noqa: ANN401, ARG001
    return False


class _IdentityFn(Operator[_T, _T]):
    name = "identity"

    def process(self, element: _T) -> t.Iterator[_T]:
        yield element


class Reparallelize(Transform[_T, _T]):
    """Materialize a collection, then spread it over the runner's workers.

    An engine may chain a producer with its consumers, which keeps a single query
    producing millions of rows on one worker. The transform depends on an empty
    view of its input as a side input, so the whole input is computed before the
    pass-through emits anything, and then redistributes the elements by a random
    key. The output is a permutation of the input.
    """

    def __init__(
        self,
        num_partitions: int | None = None,
        seed: int | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            num_partitions: Output partitions. Defaults to the runner's parallelism.
            seed: Seed for the redistribution key.
        """
        self.num_partitions = num_partitions
        self.seed = seed

    def expand(  # noqa: D102
        self,
        collection: PartitionedCollection[_T],
    ) -> PartitionedCollection[_T]:
        empty = AsIterable(collection | Filter(_never))
        materialized = collection | ParDo(
            _IdentityFn(),
            side_inputs=(empty,),
            coder=collection.coder,
        )
        return materialized | Reshuffle(self.num_partitions, seed=self.seed)
