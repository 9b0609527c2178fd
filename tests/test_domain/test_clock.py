"""Tests for the deadline clock helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from marketplace_escrow.domain.clock import (
    ManualClock,
    deadline_after,
    duration,
    is_past,
    time_remaining,
)
from marketplace_escrow.domain.enums import TimeUnit

NOW = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


class TestDuration:
    def test_units(self) -> None:
        assert duration(15, TimeUnit.MINUTES) == timedelta(minutes=15)
        assert duration(2, "hours") == timedelta(hours=2)
        assert duration(3, TimeUnit.DAYS) == timedelta(days=3)

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            duration(-1, TimeUnit.HOURS)


class TestIsPast:
    def test_strictly_after(self) -> None:
        deadline = deadline_after(NOW, timedelta(hours=1))
        assert not is_past(deadline, NOW)
        assert not is_past(deadline, deadline)
        assert is_past(deadline, deadline + timedelta(seconds=1))

    def test_unset_deadline_never_passes(self) -> None:
        assert not is_past(None, NOW)


class TestTimeRemaining:
    def test_breakdown(self) -> None:
        remaining = time_remaining(NOW + timedelta(days=2, hours=3, minutes=4, seconds=59), NOW)
        assert remaining.to_dict() == {"days": 2, "hours": 3, "minutes": 4}
        assert not remaining.elapsed

    def test_past_deadline_is_zero(self) -> None:
        remaining = time_remaining(NOW - timedelta(minutes=1), NOW)
        assert remaining.elapsed


class TestManualClock:
    def test_advance(self) -> None:
        clock = ManualClock(NOW)
        assert clock() == NOW
        clock.advance(hours=48, minutes=1)
        assert clock() == NOW + timedelta(hours=48, minutes=1)
