"""Per-descriptor event interest and dispatch to callbacks."""

from __future__ import annotations

import enum
import weakref
from typing import Any, Callable, Optional

from .logger import get_logger

EventCallback = Callable[[], None]

# Poller bookkeeping state of a channel that has never been registered.
INDEX_NEW = -1


class EventFlag(enum.IntFlag):
    """Abstract event bits, independent of the polling mechanism."""

    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    ERROR = 1 << 2
    CLOSE = 1 << 3


class Channel:
    """Tracks the events wanted for one file descriptor and dispatches the ones that fire.

    ``loop`` must provide ``update_channel(channel)`` and ``remove_channel(channel)``.
    """

    def __init__(self, loop: Any, fd: int) -> None:
        self.owner_loop = loop
        self._fd = fd
        self._events = EventFlag.NONE
        self.revents = EventFlag.NONE
        self.index = INDEX_NEW
        self._tie: Optional[weakref.ref] = None
        self._event_handling = False
        self._added_to_loop = False
        self._read_callback: Optional[EventCallback] = None
        self._write_callback: Optional[EventCallback] = None
        self._close_callback: Optional[EventCallback] = None
        self._error_callback: Optional[EventCallback] = None
        get_logger().debug("Channel created, fd=%d", fd)

    def __repr__(self) -> str:
        return f"Channel(fd={self._fd}, events={self._events!r})"

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def events(self) -> EventFlag:
        return self._events

    @property
    def added_to_loop(self) -> bool:
        return self._added_to_loop

    @property
    def event_handling(self) -> bool:
        return self._event_handling

    def set_read_callback(self, callback: Optional[EventCallback]) -> None:
        self._read_callback = callback

    def set_write_callback(self, callback: Optional[EventCallback]) -> None:
        self._write_callback = callback

    def set_close_callback(self, callback: Optional[EventCallback]) -> None:
        self._close_callback = callback

    def set_error_callback(self, callback: Optional[EventCallback]) -> None:
        self._error_callback = callback

    def tie(self, obj: Any) -> None:
        """Only dispatch events while ``obj`` is still alive."""
        self._tie = weakref.ref(obj)

    def handle_event(self) -> None:
        """Run the callbacks for the events recorded in ``revents``."""
        self._event_handling = True
        try:
            get_logger().debug(
                "Channel.handle_event fd=%d revents=%d", self._fd, int(self.revents)
            )
            if self._tie is not None:
                guard = self._tie()
                if guard is not None:
                    self._dispatch()
                del guard
            else:
                self._dispatch()
        finally:
            self._event_handling = False

    def _dispatch(self) -> None:
        revents = self.revents
        # A hang-up without readable data is a close; with data, read first.
        if revents & EventFlag.CLOSE and not revents & EventFlag.READ:
            if self._close_callback:
                self._close_callback()
        if revents & EventFlag.ERROR and self._error_callback:
            self._error_callback()
        if revents & EventFlag.READ and self._read_callback:
            self._read_callback()
        if revents & EventFlag.WRITE and self._write_callback:
            self._write_callback()

    def is_none_event(self) -> bool:
        return self._events == EventFlag.NONE

    def enable_reading(self) -> None:
        self._events |= EventFlag.READ
        self._update()

    def disable_reading(self) -> None:
        self._events &= ~EventFlag.READ
        self._update()

    def enable_writing(self) -> None:
        self._events |= EventFlag.WRITE
        self._update()

    def disable_writing(self) -> None:
        self._events &= ~EventFlag.WRITE
        self._update()

    def disable_all(self) -> None:
        self._events = EventFlag.NONE
        self._update()

    def is_reading(self) -> bool:
        return bool(self._events & EventFlag.READ)

    def is_writing(self) -> bool:
        return bool(self._events & EventFlag.WRITE)

    def remove(self) -> None:
        """Leave the owning loop; all events must have been disabled first."""
        if not self.is_none_event():
            raise RuntimeError("channel still has events enabled")
        self._added_to_loop = False
        self.owner_loop.remove_channel(self)

    def _update(self) -> None:
        self._added_to_loop = True
        self.owner_loop.update_channel(self)