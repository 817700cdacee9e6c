"""A single one-shot or repeating timer."""

from __future__ import annotations

import itertools
from typing import Callable

TimerCallback = Callable[[], None]

_sequence = itertools.count(1)


class Timer:
    """Callback due at a monotonic time point (seconds), optionally repeating every ``interval_ms``."""

    def __init__(self, callback: TimerCallback, when: float, interval_ms: float = 0) -> None:
        self._callback = callback
        self.expiration = when
        self._interval_ms = interval_ms
        self._repeat = interval_ms > 0
        self._sequence = next(_sequence)

    def __repr__(self) -> str:
        return (
            f"Timer(seq={self._sequence}, expiration={self.expiration}, "
            f"interval_ms={self._interval_ms})"
        )

    @property
    def interval_ms(self) -> float:
        return self._interval_ms

    @property
    def repeat(self) -> bool:
        return self._repeat

    @property
    def sequence(self) -> int:
        return self._sequence

    def run(self) -> None:
        self._callback()

    def restart(self, now: float) -> None:
        """Schedule the next run of a repeating timer; a one-shot timer is reset to zero."""
        if self._repeat:
            self.expiration = now + self._interval_ms / 1000
        else:
            self.expiration = 0.0

    def expired(self, now: float) -> bool:
        return now >= self.expiration