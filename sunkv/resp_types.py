"""RESP value types and their wire encoding."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Union

TextLike = Union[str, bytes, bytearray, memoryview]

_CRLF = b"\r\n"


class RespType(Enum):
    """RESP type markers; the null variants share the marker of their kind."""

    SIMPLE_STRING = "+"
    ERROR = "-"
    INTEGER = ":"
    BULK_STRING = "$"
    ARRAY = "*"
    NULL_BULK = "$"
    NULL_ARRAY = "*"


def _as_text(value: TextLike) -> str:
    if isinstance(value, str):
        return value
    return bytes(value).decode("utf-8", "surrogateescape")


def _as_bytes(value: TextLike) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8", "surrogateescape")
    return bytes(value)


class RespValue(ABC):
    """Base class of every RESP value."""

    @property
    @abstractmethod
    def resp_type(self) -> RespType:
        """The RESP type marker of this value."""

    @abstractmethod
    def encode(self) -> bytes:
        """Encode the value in RESP wire format."""

    @abstractmethod
    def to_string(self) -> str:
        """Human-readable form used for debugging and tests."""

    def __str__(self) -> str:
        return self.to_string()

    def is_simple_string(self) -> bool:
        return self.resp_type is RespType.SIMPLE_STRING

    def is_error(self) -> bool:
        return self.resp_type is RespType.ERROR

    def is_integer(self) -> bool:
        return self.resp_type is RespType.INTEGER

    def is_bulk_string(self) -> bool:
        return self.resp_type is RespType.BULK_STRING

    def is_array(self) -> bool:
        return self.resp_type is RespType.ARRAY

    def is_null(self) -> bool:
        return False


@dataclass
class SimpleString(RespValue):
    """A simple string: ``+text\\r\\n``."""

    value: str

    def __post_init__(self) -> None:
        self.value = _as_text(self.value)

    @property
    def resp_type(self) -> RespType:
        return RespType.SIMPLE_STRING

    def encode(self) -> bytes:
        return b"+" + _as_bytes(self.value) + _CRLF

    def to_string(self) -> str:
        return self.value


@dataclass
class RespError(RespValue):
    """An error reply: ``-message\\r\\n``."""

    message: str

    def __post_init__(self) -> None:
        self.message = _as_text(self.message)

    @property
    def resp_type(self) -> RespType:
        return RespType.ERROR

    def encode(self) -> bytes:
        return b"-" + _as_bytes(self.message) + _CRLF

    def to_string(self) -> str:
        return "ERROR: " + self.message


@dataclass
class Integer(RespValue):
    """An integer reply: ``:number\\r\\n``."""

    value: int

    @property
    def resp_type(self) -> RespType:
        return RespType.INTEGER

    def encode(self) -> bytes:
        return b":" + str(self.value).encode("ascii") + _CRLF

    def to_string(self) -> str:
        return str(self.value)


@dataclass
class BulkString(RespValue):
    """A binary-safe bulk string, or the null bulk string."""

    value: bytes = b""
    null: bool = False

    def __post_init__(self) -> None:
        self.value = _as_bytes(self.value)

    @property
    def resp_type(self) -> RespType:
        return RespType.NULL_BULK if self.null else RespType.BULK_STRING

    def is_null(self) -> bool:
        return self.null

    def encode(self) -> bytes:
        if self.null:
            return b"$-1\r\n"
        return b"$" + str(len(self.value)).encode("ascii") + _CRLF + self.value + _CRLF

    def to_string(self) -> str:
        if self.null:
            return "(null)"
        return self.value.decode("utf-8", "replace")


@dataclass
class Array(RespValue):
    """An array of RESP values, or the null array."""

    values: List[RespValue] = field(default_factory=list)
    null: bool = False

    @property
    def resp_type(self) -> RespType:
        return RespType.NULL_ARRAY if self.null else RespType.ARRAY

    def is_null(self) -> bool:
        return self.null

    def add_value(self, value: RespValue) -> None:
        """Append an element; the array stops being null."""
        self.values.append(value)
        self.null = False

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self):
        return iter(self.values)

    def encode(self) -> bytes:
        if self.null:
            return b"*-1\r\n"
        parts = [b"*" + str(len(self.values)).encode("ascii") + _CRLF]
        parts.extend(item.encode() for item in self.values)
        return b"".join(parts)

    def to_string(self) -> str:
        if self.null:
            return "(null array)"
        return "[" + ", ".join(item.to_string() for item in self.values) + "]"


def make_simple_string(value: TextLike) -> SimpleString:
    return SimpleString(value)


def make_error(message: TextLike) -> RespError:
    return RespError(message)


def make_integer(value: int) -> Integer:
    return Integer(value)


def make_bulk_string(value: TextLike) -> BulkString:
    return BulkString(value)


def make_null_bulk_string() -> BulkString:
    return BulkString(null=True)


def make_array(values) -> Array:
    return Array(list(values))


def make_null_array() -> Array:
    return Array(null=True)