"""A pool of event loop threads handing out loops round-robin."""

from __future__ import annotations

import itertools
from typing import List, Optional

from .event_loop import EventLoop
from .event_loop_thread import EventLoopThread, ThreadInitCallback
from .logger import get_logger


class EventLoopThreadPool:
    """Owns ``num_threads`` loop threads; with none, every request gets the base loop."""

    _counter = itertools.count()

    def __init__(self, base_loop: EventLoop, name: str = "") -> None:
        self._base_loop = base_loop
        self._name = name or f"EventLoopThreadPool{next(EventLoopThreadPool._counter)}"
        self._started = False
        self.num_threads = 0
        self.thread_init_callback: Optional[ThreadInitCallback] = None
        self._next = 0
        self._threads: List[EventLoopThread] = []
        self._loops: List[EventLoop] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the threads; call from the base loop's thread."""
        if self._started:
            raise RuntimeError(f"pool {self._name} already started")
        self._base_loop.assert_in_loop_thread()
        self._started = True
        for index in range(self.num_threads):
            thread = EventLoopThread(self.thread_init_callback, f"{self._name}{index}")
            self._threads.append(thread)
            self._loops.append(thread.start_loop())
        if self.num_threads == 0 and self.thread_init_callback is not None:
            self.thread_init_callback(self._base_loop)

    def get_next_loop(self) -> EventLoop:
        """The next loop in round-robin order, or the base loop if there are none."""
        self._check_started()
        if not self._loops:
            return self._base_loop
        loop = self._loops[self._next]
        self._next = (self._next + 1) % len(self._loops)
        return loop

    def get_loop(self, index: int) -> EventLoop:
        """The loop at ``index``; out-of-range indexes give the base loop."""
        self._check_started()
        if 0 <= index < len(self._loops):
            return self._loops[index]
        return self._base_loop

    def get_all_loops(self) -> List[EventLoop]:
        self._check_started()
        if not self._loops:
            return [self._base_loop]
        return list(self._loops)

    def stop(self) -> None:
        """Quit every loop and join every thread."""
        if not self._started:
            return
        get_logger().info("EventLoopThreadPool %s stopping", self._name)
        for loop in self._loops:
            loop.quit()
        for thread in self._threads:
            thread.stop()
        self._loops.clear()
        self._threads.clear()
        self._next = 0
        self._started = False
        get_logger().info("EventLoopThreadPool %s stopped", self._name)

    def _check_started(self) -> None:
        self._base_loop.assert_in_loop_thread()
        if not self._started:
            raise RuntimeError(f"pool {self._name} is not started")