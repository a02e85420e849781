"""Sink classes, used for writing records to SQL targets."""

from __future__ import annotations

from sqlio.sinks.sql import Write, WriteFn, WriteSpec

__all__ = ["Write", "WriteFn", "WriteSpec"]
