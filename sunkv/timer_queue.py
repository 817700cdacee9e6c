"""Thread-safe queue of timers ordered by expiration time."""

from __future__ import annotations

import heapq
import itertools
import math
import threading
import time
from typing import Dict, List, Optional, Tuple

from .logger import get_logger
from .timer import Timer, TimerCallback

_Entry = Tuple[float, int, int, Timer]


class TimerQueue:
    """Holds pending timers; the owner asks for the next timeout and fires what is due.

    Time points are ``time.monotonic()`` seconds; intervals are milliseconds.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heap: List[_Entry] = []
        self._timers: Dict[int, Timer] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)

    def add_timer(self, callback: TimerCallback, when: float, interval: float = 0) -> int:
        """Schedule ``callback`` at ``when``; returns an id usable with ``cancel``."""
        timer = Timer(callback, when, interval)
        with self._lock:
            timer_id = next(self._ids)
            self._timers[timer_id] = timer
            self._push(timer_id, timer)
        get_logger().debug("timer %d added, interval=%sms", timer_id, interval)
        return timer_id

    def cancel(self, timer_id: int) -> bool:
        """Cancel a pending timer; returns whether it existed."""
        with self._lock:
            found = self._timers.pop(timer_id, None) is not None
        if found:
            get_logger().debug("timer %d cancelled", timer_id)
        return found

    def next_timeout_ms(self, now: Optional[float] = None) -> Optional[int]:
        """Milliseconds until the earliest timer is due, 0 if overdue, ``None`` if none."""
        with self._lock:
            self._discard_stale()
            if not self._heap:
                return None
            expiration = self._heap[0][0]
        if now is None:
            now = time.monotonic()
        return max(0, math.ceil((expiration - now) * 1000))

    def handle_expired(self, now: Optional[float] = None) -> int:
        """Run every timer due at ``now``, reschedule repeating ones; returns how many ran."""
        if now is None:
            now = time.monotonic()
        expired: List[Tuple[int, Timer]] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                _, _, timer_id, timer = heapq.heappop(self._heap)
                if self._timers.get(timer_id) is timer:
                    expired.append((timer_id, timer))

        started = 0
        try:
            for _, timer in expired:
                started += 1
                timer.run()
        finally:
            with self._lock:
                for timer_id, timer in expired[:started]:
                    if self._timers.get(timer_id) is not timer:
                        continue
                    if timer.repeat:
                        timer.restart(now)
                        self._push(timer_id, timer)
                    else:
                        del self._timers[timer_id]
                for timer_id, timer in expired[started:]:
                    if self._timers.get(timer_id) is timer:
                        self._push(timer_id, timer)
        return started

    def _push(self, timer_id: int, timer: Timer) -> None:
        heapq.heappush(self._heap, (timer.expiration, timer.sequence, timer_id, timer))

    def _discard_stale(self) -> None:
        while self._heap:
            _, _, timer_id, timer = self._heap[0]
            if self._timers.get(timer_id) is timer:
                return
            heapq.heappop(self._heap)