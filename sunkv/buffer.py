"""Growable byte buffer with read/write cursors and cheap prepend space."""

from __future__ import annotations

import os
import threading
from typing import Optional, Union

BytesLike = Union[bytes, bytearray, memoryview, str]

EXTRA_BUFFER_SIZE = 65536

_scratch = threading.local()


def _extra_buffer() -> bytearray:
    buf = getattr(_scratch, "buf", None)
    if buf is None:
        buf = bytearray(EXTRA_BUFFER_SIZE)
        _scratch.buf = buf
    return buf


def _to_bytes(data: BytesLike) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class Buffer:
    """Byte buffer: ``[prependable | readable | writable]``."""

    INITIAL_SIZE = 1024
    CHEAP_PREPEND = 8
    CRLF = b"\r\n"

    def __init__(self, initial_size: int = INITIAL_SIZE) -> None:
        if initial_size < 0:
            raise ValueError("initial_size must be non-negative")
        self._buf = bytearray(self.CHEAP_PREPEND + initial_size)
        self._reader = self.CHEAP_PREPEND
        self._writer = self.CHEAP_PREPEND

    def __len__(self) -> int:
        return self.readable_bytes()

    def __bytes__(self) -> bytes:
        return self.peek()

    def swap(self, other: "Buffer") -> None:
        self._buf, other._buf = other._buf, self._buf
        self._reader, other._reader = other._reader, self._reader
        self._writer, other._writer = other._writer, self._writer

    def readable_bytes(self) -> int:
        return self._writer - self._reader

    def writable_bytes(self) -> int:
        return len(self._buf) - self._writer

    def prependable_bytes(self) -> int:
        return self._reader

    def peek(self) -> bytes:
        """Copy of the readable region."""
        return bytes(self._buf[self._reader:self._writer])

    def find_crlf(self, start: int = 0) -> Optional[int]:
        """Offset of the first CRLF at or after ``start`` within the readable region."""
        if not 0 <= start <= self.readable_bytes():
            raise ValueError("start is outside the readable region")
        index = self._buf.find(self.CRLF, self._reader + start, self._writer)
        return None if index < 0 else index - self._reader

    def has_written(self, length: int) -> None:
        if not 0 <= length <= self.writable_bytes():
            raise ValueError("length exceeds writable bytes")
        self._writer += length

    def unwrite(self, length: int) -> None:
        if not 0 <= length <= self.readable_bytes():
            raise ValueError("length exceeds readable bytes")
        self._writer -= length

    def retrieve(self, length: int) -> None:
        if not 0 <= length <= self.readable_bytes():
            raise ValueError("length exceeds readable bytes")
        if length < self.readable_bytes():
            self._reader += length
        else:
            self.retrieve_all()

    def retrieve_all(self) -> None:
        self._reader = self._writer = self.CHEAP_PREPEND

    def retrieve_as_bytes(self, length: int) -> bytes:
        if not 0 <= length <= self.readable_bytes():
            raise ValueError("length exceeds readable bytes")
        result = bytes(self._buf[self._reader:self._reader + length])
        self.retrieve(length)
        return result

    def retrieve_all_as_bytes(self) -> bytes:
        result = self.peek()
        self.retrieve_all()
        return result

    def append(self, data: BytesLike) -> None:
        payload = _to_bytes(data)
        self._ensure_writable(len(payload))
        self._buf[self._writer:self._writer + len(payload)] = payload
        self._writer += len(payload)

    def prepend(self, data: BytesLike) -> None:
        payload = _to_bytes(data)
        if len(payload) > self.prependable_bytes():
            self._compact()
        if len(payload) > self.prependable_bytes():
            raise ValueError("not enough prependable space")
        self._reader -= len(payload)
        self._buf[self._reader:self._reader + len(payload)] = payload

    def read_fd(self, fd: int) -> int:
        """Read what is available from ``fd``; returns the byte count, raises OSError."""
        extra = _extra_buffer()
        writable = self.writable_bytes()
        if writable >= len(extra):
            with memoryview(self._buf)[self._writer:] as target:
                n = os.readv(fd, [target])
            self._writer += n
            return n

        with memoryview(self._buf)[self._writer:] as target:
            n = os.readv(fd, [target, extra])
        if n <= writable:
            self._writer += n
        else:
            self._writer = len(self._buf)
            self.append(extra[:n - writable])
        return n

    def write_fd(self, fd: int) -> int:
        """Write the readable region to ``fd``; returns the byte count, raises OSError."""
        with memoryview(self._buf)[self._reader:self._writer] as source:
            n = os.write(fd, source)
        self.retrieve(n)
        return n

    def _compact(self) -> None:
        readable = self.readable_bytes()
        self._buf[self.CHEAP_PREPEND:self.CHEAP_PREPEND + readable] = (
            self._buf[self._reader:self._writer]
        )
        self._reader = self.CHEAP_PREPEND
        self._writer = self._reader + readable

    def _ensure_writable(self, length: int) -> None:
        if self.writable_bytes() >= length:
            return
        readable = self.readable_bytes()
        if self.prependable_bytes() + self.writable_bytes() >= length + self.CHEAP_PREPEND:
            self._compact()
            return
        required = readable + length + self.CHEAP_PREPEND
        new_buf = bytearray(max(len(self._buf) * 2, required))
        new_buf[self.CHEAP_PREPEND:self.CHEAP_PREPEND + readable] = (
            self._buf[self._reader:self._writer]
        )
        self._buf = new_buf
        self._reader = self.CHEAP_PREPEND
        self._writer = self._reader + readable