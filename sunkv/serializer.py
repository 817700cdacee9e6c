"""Serialization of RESP values and raw replies to wire bytes."""

from __future__ import annotations

from typing import Iterable, Optional

from .resp_types import RespValue, TextLike

SIMPLE_STRING_OK = b"+OK\r\n"
SIMPLE_STRING_PONG = b"+PONG\r\n"
NULL_BULK_STRING = b"$-1\r\n"

_CRLF = b"\r\n"


def _to_bytes(data: TextLike) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8", "surrogateescape")
    return bytes(data)


def serialize(value: RespValue) -> bytes:
    """Encode any RESP value."""
    return value.encode()


def serialize_simple_string(text: TextLike) -> bytes:
    return b"+" + _to_bytes(text) + _CRLF


def serialize_error(message: TextLike) -> bytes:
    return b"-" + _to_bytes(message) + _CRLF


def serialize_integer(value: int) -> bytes:
    return b":" + str(value).encode("ascii") + _CRLF


def serialize_bulk_string(data: TextLike) -> bytes:
    payload = _to_bytes(data)
    return b"$" + str(len(payload)).encode("ascii") + _CRLF + payload + _CRLF


def serialize_null_bulk_string() -> bytes:
    return NULL_BULK_STRING


def serialize_array(items: Iterable[Optional[RespValue]]) -> bytes:
    """Encode a sequence of values; missing items become null bulk strings."""
    elements = list(items)
    parts = [b"*" + str(len(elements)).encode("ascii") + _CRLF]
    parts.extend(
        NULL_BULK_STRING if item is None else item.encode() for item in elements
    )
    return b"".join(parts)


def serialize_null_array() -> bytes:
    return b"*-1\r\n"


def serialize_status(status: TextLike) -> bytes:
    return b"+" + _to_bytes(status) + _CRLF