"""Incremental RESP parser driven by an explicit state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Tuple, Union

from .resp_types import (
    RespValue,
    make_array,
    make_bulk_string,
    make_error,
    make_integer,
    make_null_array,
    make_null_bulk_string,
    make_simple_string,
)

DataLike = Union[bytes, bytearray, memoryview, str]

INT64_MAX = 2**63 - 1
MAX_NESTING_DEPTH = 128

_CRLF = b"\r\n"


class ParseState(Enum):
    """What the parser expects next."""

    START = auto()
    SIMPLE_STRING = auto()
    ERROR = auto()
    INTEGER = auto()
    BULK_STRING_SIZE = auto()
    BULK_STRING_DATA = auto()
    ARRAY_SIZE = auto()
    ARRAY_ELEMENT = auto()


_MARKERS = {
    b"+": ParseState.SIMPLE_STRING,
    b"-": ParseState.ERROR,
    b":": ParseState.INTEGER,
    b"$": ParseState.BULK_STRING_SIZE,
    b"*": ParseState.ARRAY_SIZE,
}


@dataclass(frozen=True)
class ParseResult:
    """Outcome of one ``parse`` call.

    A failed parse is terminal: ``success`` is false and ``complete`` is true.
    """

    success: bool
    complete: bool
    processed_bytes: int
    value: Optional[RespValue] = None
    error: str = ""

    @staticmethod
    def success_result(value: RespValue, processed: int) -> "ParseResult":
        return ParseResult(True, True, processed, value, "")

    @staticmethod
    def incomplete_result(processed: int) -> "ParseResult":
        return ParseResult(True, False, processed, None, "")

    @staticmethod
    def error_result(message: str) -> "ParseResult":
        return ParseResult(False, True, 0, None, message)


@dataclass
class _ArrayContext:
    size: int
    elements: List[RespValue] = field(default_factory=list)


def _parse_int64(data: bytes, start: int, end: int) -> Optional[int]:
    """Parse a signed 64-bit decimal; ``None`` on bad format or overflow."""
    if start >= end:
        return None
    negative = data[start:start + 1] == b"-"
    if negative:
        start += 1
    value = 0
    for code in data[start:end]:
        if not 0x30 <= code <= 0x39:
            return None
        value = value * 10 + (code - 0x30)
        if value > INT64_MAX:
            return None
    return -value if negative else value


_Step = Tuple[Optional[ParseResult], int]


class RespParser:
    """Parses one RESP value at a time, keeping state across partial input."""

    def __init__(self) -> None:
        self._handlers: Dict[ParseState, Callable[[bytes, int], _Step]] = {
            ParseState.SIMPLE_STRING: self._parse_simple_string,
            ParseState.ERROR: self._parse_error,
            ParseState.INTEGER: self._parse_integer,
            ParseState.BULK_STRING_SIZE: self._parse_bulk_size,
            ParseState.BULK_STRING_DATA: self._parse_bulk_data,
            ParseState.ARRAY_SIZE: self._parse_array_size,
            ParseState.ARRAY_ELEMENT: self._parse_array_element,
        }
        self.reset()

    def reset(self) -> None:
        """Forget all partial state and the processed byte count."""
        self._state = ParseState.START
        self._temp = bytearray()
        self._bulk_size = 0
        self._processed = 0
        self._current: Optional[RespValue] = None
        self._stack: List[_ArrayContext] = []

    def processed_bytes(self) -> int:
        """Bytes consumed since the last reset."""
        return self._processed

    def in_array(self) -> bool:
        return bool(self._stack)

    def depth(self) -> int:
        return len(self._stack)

    def parse(self, data: DataLike) -> ParseResult:
        """Feed ``data`` and return the first complete value, an error or incomplete."""
        if isinstance(data, str):
            data = data.encode("utf-8", "surrogateescape")
        else:
            data = bytes(data)
        if not data:
            return ParseResult.incomplete_result(0)

        pos = 0
        while pos < len(data):
            if self._state is ParseState.START:
                marker = data[pos:pos + 1]
                pos += 1
                self._processed += 1
                state = _MARKERS.get(marker)
                if state is None:
                    return ParseResult.error_result(
                        "Invalid RESP type: " + marker.decode("latin-1")
                    )
                self._state = state
                self._temp.clear()
                continue

            result, pos = self._handlers[self._state](data, pos)
            if result is not None:
                return result

        return ParseResult.incomplete_result(self._processed)

    def _finish(self, value: RespValue) -> Optional[ParseResult]:
        """Place a finished value into the enclosing arrays, if any."""
        self._state = ParseState.START
        while self._stack:
            ctx = self._stack[-1]
            ctx.elements.append(value)
            if len(ctx.elements) < ctx.size:
                return None
            self._stack.pop()
            value = make_array(ctx.elements)
        self._current = value
        return ParseResult.success_result(value, self._processed)

    def _take_line(self, data: bytes, pos: int) -> Optional[Tuple[bytes, int]]:
        end = data.find(_CRLF, pos)
        if end < 0:
            return None
        self._processed += end + 2 - pos
        return data[pos:end], end + 2

    def _need_more(self, pos: int) -> _Step:
        return ParseResult.incomplete_result(self._processed), pos

    def _parse_simple_string(self, data: bytes, pos: int) -> _Step:
        line = self._take_line(data, pos)
        if line is None:
            return self._need_more(pos)
        text, pos = line
        return self._finish(make_simple_string(text)), pos

    def _parse_error(self, data: bytes, pos: int) -> _Step:
        line = self._take_line(data, pos)
        if line is None:
            return self._need_more(pos)
        text, pos = line
        return self._finish(make_error(text)), pos

    def _parse_integer(self, data: bytes, pos: int) -> _Step:
        end = data.find(_CRLF, pos)
        if end < 0:
            return self._need_more(pos)
        value = _parse_int64(data, pos, end)
        if value is None:
            return ParseResult.error_result("Invalid integer format"), pos
        self._processed += end + 2 - pos
        return self._finish(make_integer(value)), end + 2

    def _parse_bulk_size(self, data: bytes, pos: int) -> _Step:
        end = data.find(_CRLF, pos)
        if end < 0:
            return self._need_more(pos)
        size = _parse_int64(data, pos, end)
        if size is None or size < -1:
            return ParseResult.error_result("Invalid bulk string size"), pos
        self._bulk_size = size
        self._processed += end + 2 - pos
        pos = end + 2
        if size == -1:
            return self._finish(make_null_bulk_string()), pos
        self._state = ParseState.BULK_STRING_DATA
        self._temp.clear()
        return None, pos

    def _parse_bulk_data(self, data: bytes, pos: int) -> _Step:
        remaining = self._bulk_size - len(self._temp)
        available = len(data) - pos
        if available < remaining:
            self._temp += data[pos:]
            self._processed += available
            return self._need_more(len(data))

        self._temp += data[pos:pos + remaining]
        pos += remaining
        self._processed += remaining
        if pos + 2 > len(data):
            return self._need_more(pos)
        if data[pos:pos + 2] != _CRLF:
            return ParseResult.error_result("Missing CRLF after bulk string data"), pos
        pos += 2
        self._processed += 2
        return self._finish(make_bulk_string(bytes(self._temp))), pos

    def _parse_array_size(self, data: bytes, pos: int) -> _Step:
        end = data.find(_CRLF, pos)
        if end < 0:
            return self._need_more(pos)
        size = _parse_int64(data, pos, end)
        if size is None or size < -1:
            return ParseResult.error_result("Invalid array size"), pos
        self._processed += end + 2 - pos
        pos = end + 2
        if size == -1:
            return self._finish(make_null_array()), pos
        if size == 0:
            return self._finish(make_array([])), pos
        if len(self._stack) >= MAX_NESTING_DEPTH:
            return ParseResult.error_result("RESP nesting too deep"), pos
        self._stack.append(_ArrayContext(size))
        self._state = ParseState.START
        return None, pos

    def _parse_array_element(self, data: bytes, pos: int) -> _Step:
        # Elements are parsed through START; this state only resynchronises.
        self._state = ParseState.START
        return None, pos