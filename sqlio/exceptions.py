"""Defines a common set of exceptions which developers can raise and/or catch."""

from __future__ import annotations

import typing as t


class ConfigValidationError(Exception):
    """Raised when an operator or data source configuration fails validation."""

    def __init__(
        self,
        message: str,
        *,
        errors: list[str] | None = None,
    ) -> None:
        """Initialize a ConfigValidationError.

        Args:
            message: A message describing the error.
            errors: A list of errors which caused the validation error.
        """
        super().__init__(message)
        self.errors = errors or []


class ConnectionSourceError(Exception):
    """Raised when a physical connection could not be obtained from a source."""


class LifecycleError(RuntimeError):
    """Raised when an operator lifecycle hook is invoked out of order."""


class RowMappingError(Exception):
    """Raised when a row mapper fails on a result row."""

    def __init__(self, message: str, row: t.Any) -> None:  # noqa: ANN401
        """Initialize a RowMappingError.

        Args:
            message: A message describing the error.
            row: The result row that could not be mapped.
        """
        super().__init__(message)
        self.row = row
