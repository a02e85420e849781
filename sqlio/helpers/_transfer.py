"""Checks for values that are copied into worker instances."""

from __future__ import annotations

import pickle
import typing as t

import cloudpickle


def transfer_error(value: t.Any, name: str) -> str | None:  # noqa: ANN401
    """Return why ``value`` cannot be copied into a worker instance, if it cannot.

    Args:
        value: The value to check.
        name: The name used for ``value`` in the error message.

    Returns:
        An error message, or None if the value round-trips through cloudpickle.
    """
    try:
        cloudpickle.loads(cloudpickle.dumps(value))
    except (pickle.PicklingError, TypeError, AttributeError) as e:
        return f"{name} must be serializable to be sent to workers: {e}"
    return None


def copy_for_worker(payload: bytes) -> t.Any:  # noqa: ANN401
    """Rebuild an object serialized with :func:`serialize_for_workers`.

    Args:
        payload: The serialized object.

    Returns:
        A fresh copy owned by the calling worker.
    """
    return cloudpickle.loads(payload)


def serialize_for_workers(value: t.Any) -> bytes:  # noqa: ANN401
    """Serialize ``value`` once so that each worker can rebuild its own copy.

    Args:
        value: The object to serialize.

    Returns:
        The serialized object.
    """
    return cloudpickle.dumps(value)


def function_errors(
    value: t.Any,  # noqa: ANN401
    name: str,
    *,
    required: bool = True,
) -> list[str]:
    """Validate a caller-supplied function value.

    Args:
        value: The function value, or None if it was not given.
        name: The name used for ``value`` in error messages.
        required: Whether a missing value is an error.

    Returns:
        Validation errors, empty if the value is usable.
    """
    if value is None:
        return [f"{name} is required"] if required else []
    if not callable(value):
        return [f"{name} must be callable"]
    problem = transfer_error(value, name)
    return [problem] if problem else []
