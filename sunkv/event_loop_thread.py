"""A thread that owns and runs one event loop."""

from __future__ import annotations

import itertools
import threading
from typing import Callable, Optional

from .event_loop import EventLoop
from .logger import get_logger

ThreadInitCallback = Callable[[EventLoop], None]


class EventLoopThread:
    """Starts a thread, builds an ``EventLoop`` inside it and runs it until stopped."""

    _counter = itertools.count()

    def __init__(self, callback: Optional[ThreadInitCallback] = None, name: str = "") -> None:
        self._callback = callback
        self.name = name or f"EventLoopThread{next(EventLoopThread._counter)}"
        self._cond = threading.Condition()
        self._loop: Optional[EventLoop] = None
        self._started = False
        self._error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None
        self.exiting = False

    def __enter__(self) -> "EventLoopThread":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    @property
    def loop(self) -> Optional[EventLoop]:
        """The running loop, or ``None`` before start and after it ended."""
        with self._cond:
            return self._loop

    def start_loop(self) -> EventLoop:
        """Start the thread and return its loop once it is ready."""
        if self._thread is not None:
            raise RuntimeError(f"{self.name} was already started")
        self._thread = threading.Thread(target=self._thread_func, name=self.name, daemon=True)
        self._thread.start()
        with self._cond:
            self._cond.wait_for(lambda: self._started or self._error is not None)
            if self._error is not None:
                raise RuntimeError(f"{self.name} failed to start") from self._error
            return self._started_loop

    def stop(self) -> None:
        """Quit the loop and wait for the thread to finish."""
        with self._cond:
            if self._loop is not None:
                get_logger().info("EventLoopThread %s stopping", self.name)
                self._loop.quit()
        thread = self._thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join()
        self.exiting = True

    def _thread_func(self) -> None:
        get_logger().info("EventLoop thread %s starting", self.name)
        try:
            loop = EventLoop()
            try:
                if self._callback is not None:
                    self._callback(loop)
            except BaseException:
                loop.close()
                raise
        except BaseException as exc:
            with self._cond:
                self._error = exc
                self._cond.notify_all()
            return

        with self._cond:
            self._loop = loop
            self._started_loop = loop
            self._started = True
            self._cond.notify_all()

        try:
            loop.loop()
        finally:
            with self._cond:
                self._loop = None
            loop.close()
            get_logger().info("EventLoop thread %s stopped", self.name)