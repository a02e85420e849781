from __future__ import annotations

import logging
import logging.config
import os
import sys
import typing as t
from pathlib import Path

import yaml

import sqlio.logging

logger = logging.getLogger(__name__)

LOG_CONFIG_ENV_VAR = "SQLIO_LOG_CONFIG"


def _load_yaml_logging_config(path: Path) -> t.Any:  # noqa: ANN401
    """Load the logging config from the YAML file.

    Args:
        path: A path to the YAML file.

    Returns:
        The logging config.
    """
    with path.open() as f:
        return yaml.safe_load(f)


def setup_logging(
    *,
    log_level: str | int | None = None,
    structured: bool = False,
) -> logging.Handler:
    """Install a stderr handler on the root logger.

    If the ``SQLIO_LOG_CONFIG`` environment variable names a YAML file, it is
    applied with :func:`logging.config.dictConfig` after the default handler.

    Args:
        log_level: The log level to set.
        structured: Emit JSON lines instead of console columns.

    Returns:
        The handler that was installed.
    """
    level = log_level or logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    formatter: logging.Formatter = (
        sqlio.logging.StructuredFormatter()
        if structured
        else sqlio.logging.ConsoleFormatter()
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if LOG_CONFIG_ENV_VAR in os.environ:
        log_config_path = Path(os.environ[LOG_CONFIG_ENV_VAR])
        try:
            logging.config.dictConfig(_load_yaml_logging_config(log_config_path))
        except FileNotFoundError:
            logger.warning("Logging config file not found: %s", log_config_path)

    return handler
