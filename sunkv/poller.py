"""Readiness polling over epoll (or poll where epoll is missing)."""

from __future__ import annotations

import select
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .channel import INDEX_NEW, Channel, EventFlag
from .logger import get_logger

INDEX_ADDED = 1
INDEX_DELETED = 2


@dataclass(frozen=True)
class _Masks:
    read: int
    priority: int
    write: int
    error: int
    hangup: int
    read_hangup: int


_USE_EPOLL = hasattr(select, "epoll")

if _USE_EPOLL:
    _MASKS = _Masks(
        select.EPOLLIN,
        select.EPOLLPRI,
        select.EPOLLOUT,
        select.EPOLLERR,
        select.EPOLLHUP,
        getattr(select, "EPOLLRDHUP", 0),
    )
else:
    _MASKS = _Masks(
        select.POLLIN,
        select.POLLPRI,
        select.POLLOUT,
        select.POLLERR,
        select.POLLHUP,
        getattr(select, "POLLRDHUP", 0),
    )


def _to_mask(events: EventFlag) -> int:
    mask = 0
    if events & EventFlag.READ:
        mask |= _MASKS.read | _MASKS.priority | _MASKS.read_hangup
    if events & EventFlag.WRITE:
        mask |= _MASKS.write
    return mask


def _to_events(mask: int) -> EventFlag:
    events = EventFlag.NONE
    if mask & _MASKS.error:
        events |= EventFlag.ERROR
    if mask & (_MASKS.read | _MASKS.priority):
        events |= EventFlag.READ
    if mask & _MASKS.write:
        events |= EventFlag.WRITE
    if mask & (_MASKS.hangup | _MASKS.read_hangup):
        events |= EventFlag.CLOSE
    return events


class Poller:
    """Keeps the fd-to-channel map and asks the kernel which channels are ready."""

    def __init__(self, loop: Any = None) -> None:
        self._owner_loop = loop
        self._impl = select.epoll() if _USE_EPOLL else select.poll()
        self._channels: Dict[int, Channel] = {}
        self._poll_calls = 0
        self._closed = False

    def __enter__(self) -> "Poller":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if _USE_EPOLL:
            self._impl.close()

    def poll(self, timeout_ms: Optional[int]) -> List[Channel]:
        """Wait up to ``timeout_ms`` (``None`` or negative: forever); return ready channels."""
        self._poll_calls += 1
        try:
            if _USE_EPOLL:
                timeout = -1 if timeout_ms is None or timeout_ms < 0 else timeout_ms / 1000
                ready = self._impl.poll(timeout)
            else:
                timeout = None if timeout_ms is None or timeout_ms < 0 else timeout_ms
                ready = self._impl.poll(timeout)
        except OSError as exc:
            get_logger().error("Poller.poll failed: %s", exc)
            return []

        active = []
        for fd, mask in ready:
            channel = self._channels.get(fd)
            if channel is None:
                continue
            channel.revents = _to_events(mask)
            active.append(channel)
        return active

    def update_channel(self, channel: Channel) -> None:
        """Register, modify or drop interest for ``channel`` according to its events."""
        self._assert_in_loop_thread()
        fd = channel.fd
        index = channel.index
        if index in (INDEX_NEW, INDEX_DELETED):
            known = self._channels.get(fd)
            if index == INDEX_NEW:
                if known is not None:
                    raise ValueError(f"fd {fd} already has a channel")
                self._channels[fd] = channel
            elif known is not channel:
                raise ValueError(f"channel for fd {fd} is not registered here")
            channel.index = INDEX_ADDED
            self._control("register", channel)
        else:
            if self._channels.get(fd) is not channel or index != INDEX_ADDED:
                raise ValueError(f"channel for fd {fd} is not registered here")
            if channel.is_none_event():
                self._control("unregister", channel)
                channel.index = INDEX_DELETED
            else:
                self._control("modify", channel)

    def remove_channel(self, channel: Channel) -> None:
        """Forget ``channel``; its events must already be disabled."""
        self._assert_in_loop_thread()
        fd = channel.fd
        if self._channels.get(fd) is not channel:
            raise ValueError(f"channel for fd {fd} is not registered here")
        if not channel.is_none_event():
            raise ValueError("channel still has events enabled")
        index = channel.index
        if index not in (INDEX_ADDED, INDEX_DELETED):
            raise ValueError("channel is in an unexpected poller state")
        del self._channels[fd]
        if index == INDEX_ADDED:
            self._control("unregister", channel)
        channel.index = INDEX_NEW

    def has_channel(self, channel: Channel) -> bool:
        self._assert_in_loop_thread()
        return self._channels.get(channel.fd) is channel

    def _control(self, operation: str, channel: Channel) -> None:
        fd = channel.fd
        try:
            if operation == "register":
                self._impl.register(fd, _to_mask(channel.events))
            elif operation == "modify":
                self._impl.modify(fd, _to_mask(channel.events))
            else:
                self._impl.unregister(fd)
        except (OSError, ValueError, KeyError) as exc:
            get_logger().error("poller %s failed for fd %d: %s", operation, fd, exc)

    def _assert_in_loop_thread(self) -> None:
        if self._owner_loop is not None:
            self._owner_loop.assert_in_loop_thread()