"""
clock.py — Clock capability used to stamp created_at / updated_at columns.

Services call clock.now() instead of datetime.now() so tests can pin time
with set_clock(FixedClock(...)).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Always returns the same instant."""

    def __init__(self, instant: datetime) -> None:
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


_clock: Clock = SystemClock()


def set_clock(clock: Clock) -> Clock:
    """Installs `clock` and returns the previous one so callers can restore it."""
    global _clock
    previous = _clock
    _clock = clock
    return previous


def now() -> datetime:
    return _clock.now()
