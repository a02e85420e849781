from __future__ import annotations

import logging
import typing as t

import pytest

from sqlio import setup_logging
from sqlio.logging import ConsoleFormatter, StructuredFormatter

if t.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def root_logger():
    """Restore the root logger's level and handlers after each test."""
    root = logging.getLogger()
    level = root.level
    handlers = root.handlers[:]

    yield root

    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _no_log_config(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("SQLIO_LOG_CONFIG", raising=False)


def test_console_handler(root_logger: logging.Logger):
    handler = setup_logging(log_level="DEBUG")

    assert handler in root_logger.handlers
    assert isinstance(handler.formatter, ConsoleFormatter)
    assert root_logger.level == logging.DEBUG


def test_structured_handler(root_logger: logging.Logger):
    handler = setup_logging(structured=True)

    assert isinstance(handler.formatter, StructuredFormatter)
    assert root_logger.level == logging.INFO


def test_yaml_log_config(
    root_logger: logging.Logger,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
):
    config = tmp_path / "logging.yml"
    config.write_text(
        "version: 1\n"
        "incremental: true\n"
        "loggers:\n"
        "  sqlio.metrics:\n"
        "    level: WARNING\n",
    )
    monkeypatch.setenv("SQLIO_LOG_CONFIG", str(config))
    metrics_logger = logging.getLogger("sqlio.metrics")
    previous_level = metrics_logger.level

    try:
        setup_logging()
        assert metrics_logger.level == logging.WARNING
    finally:
        metrics_logger.setLevel(previous_level)


def test_missing_log_config(
    root_logger: logging.Logger,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    caplog: pytest.LogCaptureFixture,
):
    missing = tmp_path / "missing.yml"
    monkeypatch.setenv("SQLIO_LOG_CONFIG", str(missing))

    setup_logging()

    assert f"Logging config file not found: {missing}" in caplog.text
