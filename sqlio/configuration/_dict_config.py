"""Helpers for parsing and wrangling configuration dictionaries."""

from __future__ import annotations

import json
import logging
import os
import typing as t
from pathlib import Path

from dotenv import find_dotenv
from dotenv.main import DotEnv

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes", "on")


def _schema_types(schema: dict[str, t.Any]) -> set[str]:
    types = schema.get("type", [])
    return {types} if isinstance(types, str) else set(types)


def parse_environment_config(
    config_schema: dict[str, t.Any],
    prefix: str,
    dotenv_path: str | None = None,
) -> dict[str, t.Any]:
    """Parse configuration from environment variables.

    Values are coerced by the property's schema type: integers, booleans, and JSON
    for arrays and objects. The helper takes any schema, not only the data source
    one, whose properties are all strings.

    Args:
        config_schema: A JSON Schema dictionary for the configuration.
        prefix: Prefix for environment variables.
        dotenv_path: Path to a .env file. If None, will try to find one in increasingly
            higher folders.

    Returns:
        A configuration dictionary.
    """
    result: dict[str, t.Any] = {}

    if not dotenv_path:
        dotenv_path = find_dotenv(usecwd=True)

    if dotenv_path:
        logger.debug("Loading configuration from %s", dotenv_path)
        DotEnv(dotenv_path).set_as_environment_variables()

    for config_key, schema in config_schema.get("properties", {}).items():
        env_var_name = prefix + config_key.upper().replace("-", "_")
        if env_var_name not in os.environ:
            continue

        env_var_value = os.environ[env_var_name]
        logger.info(
            "Parsing '%s' config from env variable '%s'.",
            config_key,
            env_var_name,
        )
        types = _schema_types(schema)
        if "integer" in types:
            result[config_key] = int(env_var_value)
        elif "boolean" in types:
            result[config_key] = env_var_value.lower() in TRUTHY
        elif types & {"array", "object"}:
            result[config_key] = json.loads(env_var_value)
        else:
            result[config_key] = env_var_value
    return result


def merge_config_sources(
    inputs: t.Iterable[str],
    config_schema: dict[str, t.Any],
    env_prefix: str,
) -> dict[str, t.Any]:
    """Merge configuration from multiple sources into a single dictionary.

    Later sources override earlier ones.

    Args:
        inputs: A sequence of configuration sources (file paths or ENV).
        config_schema: A JSON Schema dictionary for the configuration.
        env_prefix: Prefix for environment variables.

    Raises:
        FileNotFoundError: If any of config files does not exist.

    Returns:
        A single configuration dictionary.
    """
    config: dict[str, t.Any] = {}
    for config_input in inputs:
        if config_input == "ENV":
            env_config = parse_environment_config(config_schema, prefix=env_prefix)
            config.update(env_config)
            continue

        config_path = Path(config_input)

        if not config_path.is_file():
            msg = (
                f"Could not locate config file at '{config_path}'. Please check that "
                "the file exists."
            )
            raise FileNotFoundError(msg)

        config.update(json.loads(config_path.read_text(encoding="utf-8")))

    return config
