"""SQL read and write operators for partitioned batch pipelines."""

from __future__ import annotations

from sqlio import engine, sinks, streams
from sqlio._logging import setup_logging
from sqlio.coders import Coder, JSONCoder, PickleCoder, StrUtf8Coder
from sqlio.datasource import COMPATIBILITY_MARKER, DataSourceConfig
from sqlio.engine import Create, DirectRunner, Reparallelize
from sqlio.retry import is_deadlock
from sqlio.sinks import Write, WriteSpec
from sqlio.streams import QuerySpec, Read, ReadAll

__all__ = [
    "COMPATIBILITY_MARKER",
    "Coder",
    "Create",
    "DataSourceConfig",
    "DirectRunner",
    "JSONCoder",
    "PickleCoder",
    "QuerySpec",
    "Read",
    "ReadAll",
    "Reparallelize",
    "StrUtf8Coder",
    "Write",
    "WriteSpec",
    "engine",
    "is_deadlock",
    "setup_logging",
    "sinks",
    "streams",
]
