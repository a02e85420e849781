"""Tests for the fusion-break redistribution transform."""

from __future__ import annotations

import collections
import random
import typing as t

import pytest

from sqlio.coders import StrUtf8Coder
from sqlio.engine import (
    Create,
    DirectRunner,
    Operator,
    ParDo,
    PartitionedCollection,
    Reparallelize,
)


class _Expand(Operator[int, int]):
    name = "expand"

    def process(self, element: int) -> t.Iterator[int]:
        yield from range(element)


@pytest.mark.parametrize(
    "elements",
    [
        pytest.param([], id="empty"),
        pytest.param([7], id="single"),
        pytest.param([1, 1, 2, 2, 2, 3], id="duplicates"),
        pytest.param(random.Random(0).choices(range(20), k=500), id="random"),
    ],
)
def test_output_is_permutation(runner, elements: list[int]):
    output = runner.begin() | Create(elements) | Reparallelize(seed=9)

    assert collections.Counter(output.elements()) == collections.Counter(elements)


def test_spreads_serial_producer(runner):
    serial = runner.begin() | Create([1000]) | ParDo(_Expand())
    assert serial.num_partitions == 1

    output = serial | Reparallelize(seed=3)

    assert output.num_partitions == runner.parallelism
    assert all(output.partitions)
    assert sorted(output.elements()) == list(range(1000))


def test_num_partitions(runner):
    output = runner.begin() | Create(range(40)) | Reparallelize(num_partitions=8)

    assert output.num_partitions == 8
    assert len(output) == 40


def test_keeps_coder(runner):
    output = (
        runner.begin()
        | Create(["a", "b", "c"], coder=StrUtf8Coder())
        | Reparallelize(num_partitions=2)
    )

    assert output.coder == StrUtf8Coder()
    assert sorted(output.elements()) == ["a", "b", "c"]


def test_materializes_input_before_pass_through(runner):
    """The pass-through stage receives the empty view as its only side input."""
    calls: list[tuple[str, tuple]] = []
    original = DirectRunner.run_operator

    def spy(self, operator, collection, *, side_inputs=(), coder=None):
        calls.append(
            (operator.name, tuple(view.materialize() for view in side_inputs)),
        )
        return original(
            self,
            operator,
            collection,
            side_inputs=side_inputs,
            coder=coder,
        )

    with pytest.MonkeyPatch.context() as m:
        m.setattr(DirectRunner, "run_operator", spy)
        runner.begin() | Create([1, 2, 3]) | Reparallelize()

    assert calls == [("filter", ()), ("identity", ((),))]


def test_over_explicit_partitions():
    runner = DirectRunner(parallelism=2)
    collection = PartitionedCollection([[1, 2], [3], [4, 5, 6]], runner=runner)

    output = collection | Reparallelize(seed=1)

    assert output.num_partitions == 2
    assert sorted(output.elements()) == [1, 2, 3, 4, 5, 6]
