"""Tests for the operator lifecycle state machine."""

from __future__ import annotations

import typing as t

import pytest

from sqlio.engine import Lifecycle, LifecycleState, Operator
from sqlio.exceptions import LifecycleError


class RecordingOperator(Operator[int, int]):
    name = "recording"

    def __init__(self, fail_on: str | None = None):
        super().__init__()
        self.events: list[str] = []
        self.fail_on = fail_on

    def _hook(self, event: str) -> None:
        self.events.append(event)
        if event == self.fail_on:
            msg = f"{event} failed"
            raise RuntimeError(msg)

    def setup(self) -> None:
        self._hook("setup")

    def start_bundle(self) -> None:
        self._hook("start_bundle")

    def process(self, element: int) -> t.Iterator[int]:
        self._hook("process")
        yield element * 10

    def finish_bundle(self) -> list[int]:
        self._hook("finish_bundle")
        return [-1]

    def abort_bundle(self) -> None:
        self._hook("abort_bundle")

    def teardown(self) -> None:
        self._hook("teardown")


def test_normal_lifecycle():
    operator = RecordingOperator()

    with Lifecycle(operator) as lifecycle:
        assert lifecycle.state is LifecycleState.READY
        with lifecycle.window() as outputs:
            assert lifecycle.state is LifecycleState.IN_WINDOW
            outputs.extend(lifecycle.process(1))
            outputs.extend(lifecycle.process(2))
        assert outputs == [10, 20, -1]
        assert lifecycle.state is LifecycleState.READY

    assert lifecycle.state is LifecycleState.CLOSED
    assert operator.events == [
        "setup",
        "start_bundle",
        "process",
        "process",
        "finish_bundle",
        "teardown",
    ]


def test_side_inputs_are_handed_over():
    operator = RecordingOperator()

    with Lifecycle(operator, side_inputs=[(1, 2)]):
        assert operator.side_inputs == ((1, 2),)


def test_element_error_aborts_window():
    operator = RecordingOperator(fail_on="process")

    with pytest.raises(RuntimeError, match="process failed"), Lifecycle(
        operator,
    ) as lifecycle, lifecycle.window():
        lifecycle.process(1)

    assert operator.events == [
        "setup",
        "start_bundle",
        "process",
        "abort_bundle",
        "teardown",
    ]


def test_setup_failure_still_tears_down():
    operator = RecordingOperator(fail_on="setup")
    lifecycle = Lifecycle(operator)

    with pytest.raises(RuntimeError, match="setup failed"):
        lifecycle.open()

    assert lifecycle.state is LifecycleState.CLOSED
    assert operator.events == ["setup", "teardown"]


def test_start_bundle_failure_aborts():
    operator = RecordingOperator(fail_on="start_bundle")

    with pytest.raises(RuntimeError, match="start_bundle failed"), Lifecycle(
        operator,
    ) as lifecycle, lifecycle.window():
        pytest.fail("window body must not run")

    assert operator.events == ["setup", "start_bundle", "abort_bundle", "teardown"]


def test_cleanup_error_does_not_hide_primary(caplog: pytest.LogCaptureFixture):
    operator = RecordingOperator(fail_on="teardown")

    with pytest.raises(ValueError, match="primary"), Lifecycle(operator):
        msg = "primary"
        raise ValueError(msg)

    assert "Failed to close after an earlier error" in caplog.text


def test_teardown_error_propagates_on_success():
    operator = RecordingOperator(fail_on="teardown")

    with pytest.raises(RuntimeError, match="teardown failed"), Lifecycle(operator):
        pass


def test_close_aborts_open_window():
    operator = RecordingOperator()
    lifecycle = Lifecycle(operator)
    lifecycle.open()
    lifecycle.begin_window()

    lifecycle.close()
    lifecycle.close()

    assert operator.events == ["setup", "start_bundle", "abort_bundle", "teardown"]


def test_close_before_open_skips_teardown():
    operator = RecordingOperator()
    lifecycle = Lifecycle(operator)

    lifecycle.close()

    assert lifecycle.state is LifecycleState.CLOSED
    assert operator.events == []


@pytest.mark.parametrize(
    "call",
    [
        pytest.param(lambda lc: lc.process(1), id="process-before-open"),
        pytest.param(lambda lc: lc.begin_window(), id="window-before-open"),
        pytest.param(lambda lc: lc.end_window(), id="end-before-open"),
    ],
)
def test_out_of_order_calls(call: t.Callable[[Lifecycle], t.Any]):
    lifecycle = Lifecycle(RecordingOperator())

    with pytest.raises(LifecycleError, match="while it is new"):
        call(lifecycle)


def test_cannot_reopen():
    lifecycle = Lifecycle(RecordingOperator())
    lifecycle.open()
    lifecycle.close()

    with pytest.raises(LifecycleError, match="Cannot open operator 'recording'"):
        lifecycle.open()


def test_nested_window_rejected():
    with Lifecycle(RecordingOperator()) as lifecycle, lifecycle.window():
        with pytest.raises(LifecycleError):
            lifecycle.begin_window()
