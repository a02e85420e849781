"""Operator base class and the lifecycle that drives one worker instance."""

from __future__ import annotations

import abc
import enum
import logging
import typing as t
from contextlib import contextmanager

from sqlio.exceptions import LifecycleError

if t.TYPE_CHECKING:
    from types import TracebackType

_In = t.TypeVar("_In")
_Out = t.TypeVar("_Out")


class Operator(abc.ABC, t.Generic[_In, _Out]):
    """Per-element processing logic executed by worker instances.

    The engine copies an operator into every worker instance and drives each copy
    through :class:`Lifecycle`:

    - :meth:`setup` once per worker instance;
    - :meth:`start_bundle`, :meth:`process` for each element of the bundle, then
      :meth:`finish_bundle` (or :meth:`abort_bundle` if the bundle failed), for
      every bundle;
    - :meth:`teardown` once, on every exit path.

    Operators are serialized before :meth:`setup` runs, so connections and other
    resources must only be created in the hooks.
    """

    #: Name used for loggers and metric tags.
    name: str = "operator"

    def __init__(self) -> None:
        """Initialize the operator."""
        self.side_inputs: tuple[t.Any, ...] = ()

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get the operator logger.

        Records carry the operator name as ``operator_name``.

        Returns:
            A logger named after the operator.
        """
        return logging.LoggerAdapter(
            logging.getLogger(f"sqlio.{self.name}"),
            {"operator_name": self.name},
        )

    def setup(self) -> None:
        """Acquire per-worker resources."""

    def start_bundle(self) -> None:
        """Prepare for a new bundle of elements."""

    @abc.abstractmethod
    def process(self, element: _In) -> t.Iterable[_Out] | None:
        """Process one element.

        Args:
            element: The input element.

        Returns:
            The output elements, or None for no output.
        """

    def finish_bundle(self) -> t.Iterable[_Out] | None:
        """Complete the current bundle.

        Returns:
            Output elements produced at the end of the bundle, if any.
        """
        return None

    def abort_bundle(self) -> None:
        """Release bundle resources after a failure, without completing the bundle."""

    def teardown(self) -> None:
        """Release per-worker resources."""


class LifecycleState(str, enum.Enum):
    """States of a worker instance."""

    NEW = "new"
    READY = "ready"
    IN_WINDOW = "in_window"
    CLOSED = "closed"


class Lifecycle(t.Generic[_In, _Out]):
    """State machine driving one operator copy.

    ``NEW -> READY -> (IN_WINDOW -> READY)* -> CLOSED``. Used as a context manager,
    :meth:`close` runs on every exit path and aborts a window left open.
    """

    def __init__(
        self,
        operator: Operator[_In, _Out],
        side_inputs: t.Sequence[t.Any] = (),
    ) -> None:
        """Initialize the lifecycle.

        Args:
            operator: The worker's own operator copy.
            side_inputs: Materialized side input values handed to the operator.
        """
        self.operator = operator
        self.state = LifecycleState.NEW
        self._side_inputs = tuple(side_inputs)

    def _require(self, state: LifecycleState, action: str) -> None:
        if self.state is not state:
            msg = (
                f"Cannot {action} operator '{self.operator.name}' while it is "
                f"{self.state.value}"
            )
            raise LifecycleError(msg)

    def open(self) -> None:
        """Run the operator's setup. A failed setup still runs teardown."""
        self._require(LifecycleState.NEW, "open")
        self.operator.side_inputs = self._side_inputs
        try:
            self.operator.setup()
        except BaseException:
            self.state = LifecycleState.CLOSED
            self._quietly(self.operator.teardown, "teardown")
            raise
        self.state = LifecycleState.READY

    def begin_window(self) -> None:
        """Start a bundle."""
        self._require(LifecycleState.READY, "begin a window of")
        self.state = LifecycleState.IN_WINDOW
        try:
            self.operator.start_bundle()
        except BaseException:
            self._quietly(self.abort_window, "abort window")
            raise

    def process(self, element: _In) -> list[_Out]:
        """Process one element of the open bundle.

        Args:
            element: The input element.

        Returns:
            The output elements.
        """
        self._require(LifecycleState.IN_WINDOW, "process an element with")
        return list(self.operator.process(element) or ())

    def end_window(self) -> list[_Out]:
        """Finish the open bundle.

        Returns:
            Output elements produced at the end of the bundle.
        """
        self._require(LifecycleState.IN_WINDOW, "end a window of")
        self.state = LifecycleState.READY
        return list(self.operator.finish_bundle() or ())

    def abort_window(self) -> None:
        """Abort the open bundle, if any."""
        if self.state is not LifecycleState.IN_WINDOW:
            return
        self.state = LifecycleState.READY
        self.operator.abort_bundle()

    def close(self) -> None:
        """Abort any open bundle and tear the operator down. Idempotent."""
        if self.state is LifecycleState.CLOSED:
            return
        opened = self.state is not LifecycleState.NEW
        try:
            self.abort_window()
        finally:
            self.state = LifecycleState.CLOSED
            if opened:
                self.operator.teardown()

    @contextmanager
    def window(self) -> t.Generator[list[_Out], None, None]:
        """Run one bundle; outputs of :meth:`end_window` are appended on success.

        Yields:
            The list collecting the bundle's outputs.
        """
        outputs: list[_Out] = []
        self.begin_window()
        try:
            yield outputs
        except BaseException:
            self._quietly(self.abort_window, "abort window")
            raise
        outputs.extend(self.end_window())

    def _quietly(self, func: t.Callable[[], None], action: str) -> None:
        """Run a cleanup step while another error propagates."""
        try:
            func()
        except Exception:
            self.operator.logger.exception(
                "Failed to %s after an earlier error",
                action,
            )

    def __enter__(self) -> Lifecycle[_In, _Out]:  # noqa: D105
        self.open()
        return self

    def __exit__(  # noqa: D105
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self._quietly(self.close, "close")
