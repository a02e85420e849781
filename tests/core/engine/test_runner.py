"""Tests for the in-process runner and primitive transforms."""

from __future__ import annotations

import threading
import typing as t
import uuid

import pytest

from sqlio.coders import JSONCoder, PickleCoder
from sqlio.engine import (
    AsIterable,
    Create,
    DirectRunner,
    Filter,
    Operator,
    ParDo,
    PartitionedCollection,
    Reshuffle,
)


class TaggingOperator(Operator[int, t.Any]):
    """Emit (worker id, element) pairs and one marker per bundle."""

    name = "tagging"

    def setup(self) -> None:
        self.worker_id = uuid.uuid4().hex

    def process(self, element: int) -> t.Iterator[tuple[str, int]]:
        yield (self.worker_id, element)

    def finish_bundle(self) -> list[str]:
        return [f"bundle:{self.worker_id}"]


class SideInputOperator(Operator[int, tuple[int, int]]):
    name = "side-input"

    def process(self, element: int) -> t.Iterator[tuple[int, int]]:
        (totals,) = self.side_inputs
        yield (element, sum(totals))


class LockingOperator(Operator[int, int]):
    name = "locking"

    def __init__(self):
        super().__init__()
        self.lock = threading.Lock()

    def process(self, element: int) -> t.Iterator[int]:
        yield element


def _split(runner: DirectRunner, *partitions: list[int]) -> PartitionedCollection:
    return PartitionedCollection(partitions, runner=runner)


class TestDirectRunner:
    @pytest.mark.parametrize(
        "kwargs",
        [{"parallelism": 0}, {"bundle_size": 0}, {"max_workers": -1}],
    )
    def test_invalid_arguments(self, kwargs: dict[str, int]):
        with pytest.raises(ValueError, match="must be positive"):
            DirectRunner(**kwargs)

    def test_one_worker_per_partition(self, runner):
        collection = _split(runner, [1, 2], [3], [], [4, 5, 6])

        output = collection | ParDo(TaggingOperator())

        assert output.num_partitions == 3
        for partition in output.partitions:
            worker_ids = {item[0] for item in partition if isinstance(item, tuple)}
            assert len(worker_ids) == 1

        all_ids = {item[0] for item in output.elements() if isinstance(item, tuple)}
        assert len(all_ids) == 3

    def test_bundles(self):
        runner = DirectRunner(bundle_size=2)
        collection = _split(runner, [1, 2, 3, 4, 5])

        output = collection | ParDo(TaggingOperator())

        markers = [item for item in output.elements() if isinstance(item, str)]
        assert len(markers) == 3
        assert [item[1] for item in output.elements() if isinstance(item, tuple)] == [
            1,
            2,
            3,
            4,
            5,
        ]

    def test_thread_pool(self):
        runner = DirectRunner(max_workers=4)
        collection = _split(runner, *([i] for i in range(8)))

        output = collection | ParDo(TaggingOperator())

        elements = sorted(
            item[1] for item in output.elements() if isinstance(item, tuple)
        )
        assert elements == list(range(8))

    def test_side_inputs_materialized(self, runner):
        totals = runner.begin() | Create([1, 2, 3])
        collection = _split(runner, [10], [20])

        output = collection | ParDo(
            SideInputOperator(),
            side_inputs=(AsIterable(totals),),
        )

        assert sorted(output.elements()) == [(10, 6), (20, 6)]

    def test_operator_must_be_serializable(self, runner):
        collection = _split(runner, [1])

        with pytest.raises(TypeError):
            collection | ParDo(LockingOperator())

    def test_worker_error_propagates(self, runner):
        collection = _split(runner, [1, 2, 0])

        with pytest.raises(ZeroDivisionError):
            collection | ParDo(_Reciprocal())


class _Reciprocal(Operator[int, float]):
    name = "reciprocal"

    def process(self, element: int) -> t.Iterator[float]:
        yield 1 / element


class TestTransforms:
    def test_create(self, runner):
        collection = runner.begin() | Create([3, 1, 2], coder=JSONCoder())

        assert collection.partitions == ((3, 1, 2),)
        assert collection.coder == JSONCoder()

    def test_par_do_default_coder(self, runner):
        collection = runner.begin() | Create([1]) | ParDo(TaggingOperator())

        assert collection.coder == PickleCoder()

    def test_filter_keeps_coder(self, runner):
        collection = (
            runner.begin()
            | Create(range(10), coder=JSONCoder())
            | Filter(lambda n: n % 2 == 0)
        )

        assert list(collection.elements()) == [0, 2, 4, 6, 8]
        assert collection.coder == JSONCoder()

    def test_reshuffle_partitions(self, runner):
        collection = runner.begin() | Create(range(100)) | Reshuffle(seed=1)

        assert collection.num_partitions == runner.parallelism
        assert sorted(collection.elements()) == list(range(100))

    def test_reshuffle_encodes_elements(self, runner):
        collection = (
            runner.begin()
            | Create([(1, "a"), (2, "b")], coder=JSONCoder())
            | Reshuffle(num_partitions=2, seed=5)
        )

        assert sorted(collection.elements()) == [[1, "a"], [2, "b"]]

    def test_reshuffle_is_seeded(self, runner):
        first = runner.begin() | Create(range(50)) | Reshuffle(seed=42)
        second = runner.begin() | Create(range(50)) | Reshuffle(seed=42)

        assert first.partitions == second.partitions

    def test_reshuffle_rejects_zero_partitions(self):
        with pytest.raises(ValueError, match="num_partitions must be positive"):
            Reshuffle(num_partitions=0)

    def test_collection_repr(self, runner):
        collection = _split(runner, [1, 2], [3])

        assert len(collection) == 3
        assert repr(collection) == (
            "PartitionedCollection(elements=3, partitions=2, coder=PickleCoder)"
        )
