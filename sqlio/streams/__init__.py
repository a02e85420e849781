"""Stream classes, used for reading rows from SQL sources."""

from __future__ import annotations

from sqlio.streams.sql import QuerySpec, Read, ReadAll, ReadFn

__all__ = ["QuerySpec", "Read", "ReadAll", "ReadFn"]
