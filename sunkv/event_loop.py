"""Reactor event loop: readiness dispatch, cross-thread tasks and timers."""

from __future__ import annotations

import os
import threading
import time
from typing import Callable, List, Optional, Tuple

from .channel import Channel
from .logger import get_logger
from .poller import Poller
from .timer import TimerCallback
from .timer_queue import TimerQueue

Functor = Callable[[], None]

POLL_TIMEOUT_MS = 1000


def _create_wakeup_fds() -> Tuple[int, int]:
    """A readable/writable descriptor pair used to interrupt a blocked poll."""
    if hasattr(os, "eventfd"):
        fd = os.eventfd(0, os.EFD_NONBLOCK | os.EFD_CLOEXEC)
        return fd, fd
    read_fd, write_fd = os.pipe()
    os.set_blocking(read_fd, False)
    os.set_blocking(write_fd, False)
    return read_fd, write_fd


class EventLoop:
    """One loop per thread: waits for channel events, then runs timers and queued tasks.

    Timer time points are ``time.monotonic()`` seconds; delays are milliseconds.
    """

    def __init__(self) -> None:
        self._looping = False
        self._quit = False
        self._calling_pending = False
        self._destructing = False
        self._closed = False
        self._event_handling = False
        self._thread_id = threading.get_ident()
        self._lock = threading.Lock()
        self._pending: List[Functor] = []

        self._poller = Poller(self)
        self._timer_queue = TimerQueue()
        self._wakeup_read, self._wakeup_write = _create_wakeup_fds()
        self._use_eventfd = self._wakeup_read == self._wakeup_write

        get_logger().info("EventLoop created in thread %d", self._thread_id)

        self._wakeup_channel = Channel(self, self._wakeup_read)
        self._wakeup_channel.set_read_callback(self._handle_wakeup)
        self._wakeup_channel.enable_reading()

    def __enter__(self) -> "EventLoop":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def destructing(self) -> bool:
        return self._destructing

    @property
    def looping(self) -> bool:
        return self._looping

    def loop(self) -> None:
        """Run until ``quit`` is called and no queued task remains."""
        if self._looping:
            raise RuntimeError("event loop is already running")
        if not self.is_in_loop_thread():
            raise RuntimeError("event loop must run in the thread that created it")

        self._looping = True
        get_logger().info("EventLoop %d starts looping", self._thread_id)
        try:
            while not self._quit or self.has_pending_tasks():
                active = self._poller.poll(self._poll_timeout())
                self._event_handling = True
                try:
                    for channel in active:
                        channel.handle_event()
                finally:
                    self._event_handling = False
                self._timer_queue.handle_expired()
                self._do_pending_tasks()
            # Catch tasks queued during the final round.
            self._do_pending_tasks()
        finally:
            get_logger().info("EventLoop %d stops looping", self._thread_id)
            self._looping = False
            self._quit = False

    def quit(self) -> None:
        """Ask the loop to stop after the current iteration."""
        self._quit = True
        if not self.is_in_loop_thread() and not self._destructing:
            self.wakeup()

    def is_in_loop_thread(self) -> bool:
        return self._thread_id == threading.get_ident()

    def assert_in_loop_thread(self) -> None:
        """Raise RuntimeError when a running loop is touched from a foreign thread."""
        if self._looping and not self.is_in_loop_thread():
            get_logger().error(
                "EventLoop created in thread %d used from thread %d",
                self._thread_id,
                threading.get_ident(),
            )
            raise RuntimeError("event loop called from the wrong thread")

    def run_in_loop(self, callback: Functor) -> None:
        """Run now if in the loop thread, otherwise queue for the loop thread."""
        if self.is_in_loop_thread():
            callback()
        else:
            self.queue_in_loop(callback)

    def queue_in_loop(self, callback: Functor) -> None:
        """Queue a task for the next pending-task round."""
        with self._lock:
            self._pending.append(callback)
        if (not self.is_in_loop_thread() or self._calling_pending) and not self._destructing:
            self.wakeup()

    def wakeup(self) -> None:
        """Interrupt a blocked poll."""
        if self._closed:
            return
        try:
            if self._use_eventfd:
                os.eventfd_write(self._wakeup_write, 1)
            else:
                os.write(self._wakeup_write, b"\x01")
        except BlockingIOError:
            pass
        except OSError as exc:
            get_logger().error("EventLoop.wakeup failed: %s", exc)

    def update_channel(self, channel: Channel) -> None:
        self._check_owner(channel)
        self.assert_in_loop_thread()
        self._poller.update_channel(channel)

    def remove_channel(self, channel: Channel) -> None:
        self._check_owner(channel)
        self.assert_in_loop_thread()
        if self._event_handling and not channel.is_none_event():
            raise ValueError("channel removed while it still has events enabled")
        self._poller.remove_channel(channel)

    def has_pending_tasks(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def has_channel(self, channel: Channel) -> bool:
        self.assert_in_loop_thread()
        return self._poller.has_channel(channel)

    def run_at(self, when: float, callback: TimerCallback) -> int:
        """Run ``callback`` once at monotonic time ``when``; returns the timer id."""
        return self._add_timer(callback, when, 0)

    def run_after(self, delay_ms: float, callback: TimerCallback) -> int:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""
        return self.run_at(time.monotonic() + delay_ms / 1000, callback)

    def run_every(self, interval_ms: float, callback: TimerCallback) -> int:
        """Run ``callback`` every ``interval_ms`` milliseconds, first after one interval."""
        return self._add_timer(callback, time.monotonic() + interval_ms / 1000, interval_ms)

    def cancel_timer(self, timer_id: int) -> bool:
        """Cancel a timer; returns whether it was still pending."""
        return self._timer_queue.cancel(timer_id)

    def close(self) -> None:
        """Release the wakeup descriptor and the poller."""
        if self._closed:
            return
        self._destructing = True
        get_logger().info("EventLoop in thread %d destroyed", self._thread_id)
        self._wakeup_channel.disable_all()
        self._wakeup_channel.remove()
        self._closed = True
        os.close(self._wakeup_read)
        if not self._use_eventfd:
            os.close(self._wakeup_write)
        self._poller.close()

    def _add_timer(self, callback: TimerCallback, when: float, interval_ms: float) -> int:
        timer_id = self._timer_queue.add_timer(callback, when, interval_ms)
        if not self.is_in_loop_thread():
            self.wakeup()
        return timer_id

    def _poll_timeout(self) -> int:
        if self.has_pending_tasks():
            return 0
        next_timer = self._timer_queue.next_timeout_ms()
        if next_timer is None:
            return POLL_TIMEOUT_MS
        return min(next_timer, POLL_TIMEOUT_MS)

    def _check_owner(self, channel: Channel) -> None:
        if channel.owner_loop is not self:
            raise ValueError("channel belongs to another event loop")

    def _handle_wakeup(self) -> None:
        try:
            if self._use_eventfd:
                os.eventfd_read(self._wakeup_read)
            else:
                while os.read(self._wakeup_read, 4096):
                    pass
        except BlockingIOError:
            pass
        except OSError as exc:
            get_logger().error("EventLoop wakeup read failed: %s", exc)

    def _do_pending_tasks(self) -> None:
        self._calling_pending = True
        try:
            with self._lock:
                tasks, self._pending = self._pending, []
            for task in tasks:
                task()
        finally:
            self._calling_pending = False


def current_thread_loop_owner(loop: Optional[EventLoop]) -> bool:
    """Whether ``loop`` exists and belongs to the calling thread."""
    return loop is not None and loop.is_in_loop_thread()