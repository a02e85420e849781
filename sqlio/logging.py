"""Logging formatters for sqlio operators."""

from __future__ import annotations

import json
import linecache
import logging
import sys
import typing as t
from types import TracebackType

from sqlio import metrics

if sys.version_info >= (3, 11):
    from typing import Required  # noqa: ICN003
else:
    from typing_extensions import Required


class _FrameData(t.TypedDict):
    """Frame data."""

    filename: str
    function: str
    lineno: int
    line: str


class _ExceptionData(t.TypedDict, total=False):
    """Exception data."""

    type: Required[str]
    module: Required[str]
    message: Required[str]
    traceback: list[_FrameData]
    cause: _ExceptionData | None
    context: _ExceptionData | None


DEFAULT_FORMAT = "{asctime:23s} | {levelname:8s} | {name:30s} | {message}"
APP_NAME = "sqlio"

_SysExcInfoType: t.TypeAlias = (
    tuple[type[BaseException], BaseException, TracebackType | None]
    | tuple[None, None, None]
)

# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_FIELDS = frozenset(
    (
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "msg",
        "message",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    )
)


class ConsoleFormatter(logging.Formatter):
    """Custom formatter for console logging."""

    def __init__(self, **kwargs: t.Any) -> None:
        """Initialize the console formatter."""
        kwargs.setdefault("fmt", DEFAULT_FORMAT)
        kwargs.setdefault("style", "{")
        super().__init__(**kwargs)


class StructuredFormatter(logging.Formatter):
    """Formatter that renders each record as one JSON line.

    Operator loggers pass ``operator_name`` through ``extra``; it is promoted to a
    top-level key. Metric points logged by :mod:`sqlio.metrics` are rendered under
    ``metric_info`` instead of as a string message.
    """

    def __init__(
        self,
        *,
        defaults: dict[str, t.Any] | None = None,
        **kwargs: t.Any,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            defaults: Default field values to include in every log record.
            **kwargs: Keyword arguments for the parent formatter.
        """
        super().__init__(**kwargs)
        self._defaults = defaults

    def _format_exception(
        self,
        exc_info: _SysExcInfoType,
    ) -> _ExceptionData | None:
        """Format exception information as a structured object.

        Args:
            exc_info: Exception info tuple from sys.exc_info().

        Returns:
            Structured exception data as a dictionary.
        """
        if exc_info[0] is None:  # pragma: no cover
            return None

        exc_type, exc_value, exc_traceback = exc_info
        exception_data: _ExceptionData = {
            "type": exc_type.__name__,
            "module": exc_type.__module__,
            "message": str(exc_value),
        }

        if exc_traceback:  # pragma: no branch
            frames: list[_FrameData] = []
            tb = exc_traceback
            while tb is not None:
                frames.append(
                    {
                        "filename": tb.tb_frame.f_code.co_filename,
                        "function": tb.tb_frame.f_code.co_name,
                        "lineno": tb.tb_lineno,
                        "line": linecache.getline(
                            tb.tb_frame.f_code.co_filename,
                            tb.tb_lineno,
                        ).strip(),
                    }
                )
                tb = tb.tb_next
            exception_data["traceback"] = frames

        if exc_value.__cause__:
            cause = exc_value.__cause__
            exception_data["cause"] = self._format_exception(
                (type(cause), cause, cause.__traceback__)
            )
        elif exc_value.__context__:
            context = exc_value.__context__
            exception_data["context"] = self._format_exception(
                (type(context), context, context.__traceback__)
            )

        return exception_data

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as structured JSON.

        Args:
            record: The log record to format.

        Returns:
            Formatted log message as JSON string.
        """
        data = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_FIELDS
        }
        if self._defaults is not None:
            data = self._defaults | data

        log_data: dict[str, t.Any] = {
            "level": record.levelname.lower(),
            "pid": record.process,
            "logger_name": record.name,
            "ts": record.created,
            "thread_name": record.threadName,
            "app_name": data.pop("app_name", APP_NAME),
            "operator_name": data.pop("operator_name", None),
        }

        if record.exc_info and (exc_info := self._format_exception(record.exc_info)):
            log_data["exception"] = exc_info

        if (
            record.msg == "METRIC: %s"
            and isinstance(record.args, tuple)
            and record.args
            and isinstance(record.args[0], metrics.Point)
        ):
            log_data["message"] = "METRIC"
            log_data["metric_info"] = record.args[0].to_dict()
        elif record.args:
            try:
                log_data["message"] = record.getMessage()
            except (TypeError, ValueError):
                log_data["message"] = record.msg
        else:
            log_data["message"] = record.msg

        log_data["extra"] = data

        return json.dumps(log_data, default=str, separators=(",", ":"))
