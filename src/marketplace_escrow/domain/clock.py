"""Deadline clock: pure time arithmetic for order and submission deadlines.

No state and no side effects. A deadline is a passive fact: when
``now > deadline`` the subject is *pending automatic action* until the
sweeper applies it. Nothing here changes a status.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from marketplace_escrow.domain.enums import TimeUnit

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock used by the services."""
    return datetime.now(UTC)


class ManualClock:
    """Clock that only moves when told to (simulation and tests).

    Usage:
        clock = ManualClock()
        services = build_services(MemoryStoreFactory(clock=clock), clock=clock)
        clock.advance(days=3, minutes=1)
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 6, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


def duration(value: int, unit: TimeUnit) -> timedelta:
    """Convert a configured (value, unit) pair into a timedelta."""
    if value < 0:
        raise ValueError(f"Duration must not be negative: {value}")
    unit = TimeUnit(unit)
    if unit is TimeUnit.MINUTES:
        return timedelta(minutes=value)
    if unit is TimeUnit.HOURS:
        return timedelta(hours=value)
    return timedelta(days=value)


def deadline_after(event_at: datetime, length: timedelta) -> datetime:
    """Absolute deadline ``length`` after ``event_at``."""
    return event_at + length


def is_past(deadline: datetime | None, now: datetime) -> bool:
    """True when a set deadline has strictly elapsed."""
    return deadline is not None and now > deadline


@dataclass(frozen=True)
class TimeRemaining:
    """Whole days / hours / minutes left before a deadline."""

    days: int
    hours: int
    minutes: int

    @property
    def elapsed(self) -> bool:
        return self.days == 0 and self.hours == 0 and self.minutes == 0

    def to_dict(self) -> dict:
        return {"days": self.days, "hours": self.hours, "minutes": self.minutes}


def time_remaining(deadline: datetime, now: datetime) -> TimeRemaining:
    """Break the time left until ``deadline`` into days, hours and minutes.

    Past deadlines return all zeros.
    """
    seconds = int((deadline - now).total_seconds())
    if seconds <= 0:
        return TimeRemaining(days=0, hours=0, minutes=0)
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    return TimeRemaining(days=days, hours=hours, minutes=rest // 60)
