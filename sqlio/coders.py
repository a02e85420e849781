"""Element codecs used when collections are materialized and redistributed."""

from __future__ import annotations

import abc
import json
import pickle
import typing as t

_T = t.TypeVar("_T")


class Coder(abc.ABC, t.Generic[_T]):
    """Encodes elements to bytes and back.

    Collections are encoded with their coder whenever elements leave the worker
    that produced them, so a coder must round-trip every element it is given.
    """

    @abc.abstractmethod
    def encode(self, value: _T) -> bytes:
        """Encode one element.

        Args:
            value: The element.
        """
        ...

    @abc.abstractmethod
    def decode(self, encoded: bytes) -> _T:
        """Decode one element.

        Args:
            encoded: Bytes produced by :meth:`encode`.
        """
        ...

    def __eq__(self, other: object) -> bool:  # noqa: D105
        return type(self) is type(other)

    def __hash__(self) -> int:  # noqa: D105
        return hash(type(self))


class PickleCoder(Coder[t.Any]):
    """Codec for arbitrary picklable elements."""

    def encode(self, value: t.Any) -> bytes:  # noqa: ANN401, D102
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)

    def decode(self, encoded: bytes) -> t.Any:  # noqa: ANN401, D102
        return pickle.loads(encoded)  # noqa: S301


class JSONCoder(Coder[t.Any]):
    """Codec for JSON-compatible elements.

    Tuples come back as lists.
    """

    def encode(self, value: t.Any) -> bytes:  # noqa: ANN401, D102
        return json.dumps(value, separators=(",", ":")).encode("utf-8")

    def decode(self, encoded: bytes) -> t.Any:  # noqa: ANN401, D102
        return json.loads(encoded)


class StrUtf8Coder(Coder[str]):
    """Codec for text elements."""

    def encode(self, value: str) -> bytes:  # noqa: D102
        return value.encode("utf-8")

    def decode(self, encoded: bytes) -> str:  # noqa: D102
        return encoded.decode("utf-8")
