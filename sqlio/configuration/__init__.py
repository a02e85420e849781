"""Configuration loading helpers."""

from __future__ import annotations

from sqlio.configuration._dict_config import (
    merge_config_sources,
    parse_environment_config,
)

__all__ = [
    "merge_config_sources",
    "parse_environment_config",
]
