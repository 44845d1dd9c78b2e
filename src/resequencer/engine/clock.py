"""Time source and idle-age arithmetic for group buffers.

Every group buffer stamps the clock reading of its last accepted item.
The engine and the reaper ask how long a group has been idle through
``idle_age``/``is_idle`` so both agree on the same rule. Tests swap in
MockClock and move time explicitly.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that reports monotonic seconds."""

    def monotonic(self) -> float: ...


class SystemClock:
    """Wall-independent process clock (time.monotonic)."""

    def monotonic(self) -> float:
        return time.monotonic()


class MockClock:
    """Clock that only moves when a test tells it to.

    Example:
        clock = MockClock(start=100.0)
        engine = Resequencer(clock=clock)
        engine.submit(SequencedItem("order-42", 1, 3, "b"))
        clock.advance(30.0)
        assert engine.idle_keys(older_than_seconds=30.0) == ["order-42"]
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Let ``seconds`` of idle time pass.

        Raises:
            ValueError: If seconds is negative
        """
        if seconds < 0:
            raise ValueError(f"MockClock cannot run backwards via advance(); got negative {seconds}")
        self._now += seconds

    def set(self, value: float) -> None:
        """Jump to an absolute reading (may go backwards)."""
        self._now = float(value)


def idle_age(clock: Clock, last_activity: float) -> float:
    """Seconds since a group last accepted an item.

    Never negative: a clock set behind the stamp reads as zero idle time.
    """
    return max(0.0, clock.monotonic() - last_activity)


def is_idle(clock: Clock, last_activity: float, threshold_seconds: float) -> bool:
    """Whether a group stamped at ``last_activity`` has idled for ``threshold_seconds``."""
    return idle_age(clock, last_activity) >= threshold_seconds


DEFAULT_CLOCK: Clock = SystemClock()
