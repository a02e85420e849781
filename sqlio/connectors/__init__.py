"""Module for connection sources."""

from __future__ import annotations

from sqlio.connectors.base import BaseConnector
from sqlio.connectors.sql import IdleEviction, PooledConnectionSource, PoolSettings

__all__ = [
    "BaseConnector",
    "IdleEviction",
    "PoolSettings",
    "PooledConnectionSource",
]
