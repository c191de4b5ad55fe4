"""
Clock adapters — the time source every temporal gate is evaluated against.

Timestamps are integer seconds since the epoch. Day boundaries are computed
by truncating to a multiple of the day length, so the "wedding day" of a
timestamp is the half-open window [day_start, day_end).
"""

from __future__ import annotations

import time
from typing import Protocol

DAY_SECONDS = 86400


class Clock(Protocol):
    def now(self) -> int: ...

    def day_start(self, timestamp: int) -> int: ...

    def day_end(self, timestamp: int) -> int: ...


class _DayArithmetic:
    def __init__(self, day_length: int = DAY_SECONDS) -> None:
        if day_length <= 0:
            raise ValueError(f"Day length must be positive, got {day_length}")
        self.day_length = day_length

    def day_start(self, timestamp: int) -> int:
        """Start of the day containing `timestamp`."""
        return timestamp - (timestamp % self.day_length)

    def day_end(self, timestamp: int) -> int:
        """Start of the day after the one containing `timestamp`."""
        return self.day_start(timestamp) + self.day_length


class SystemClock(_DayArithmetic):
    """Wall clock, truncated to whole seconds."""

    def now(self) -> int:
        return int(time.time())


class ManualClock(_DayArithmetic):
    """
    Clock that only moves when told to.

    Used by tests and simulations to place calls before, inside and after a
    wedding-day window.
    """

    def __init__(self, now: int = 0, day_length: int = DAY_SECONDS) -> None:
        super().__init__(day_length)
        self._now = now

    def now(self) -> int:
        return self._now

    def set(self, timestamp: int) -> None:
        self._now = timestamp

    def advance(self, seconds: int) -> int:
        self._now += seconds
        return self._now
