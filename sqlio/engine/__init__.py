"""Minimal execution engine the SQL operators run on."""

from __future__ import annotations

from sqlio.engine.collection import PartitionedCollection
from sqlio.engine.core import Lifecycle, LifecycleState, Operator
from sqlio.engine.reparallelize import Reparallelize
from sqlio.engine.runner import DirectRunner
from sqlio.engine.transforms import (
    AsIterable,
    Create,
    Filter,
    ParDo,
    Reshuffle,
    Transform,
)

__all__ = [
    "AsIterable",
    "Create",
    "DirectRunner",
    "Filter",
    "Lifecycle",
    "LifecycleState",
    "Operator",
    "ParDo",
    "PartitionedCollection",
    "Reparallelize",
    "Reshuffle",
    "Transform",
]
