"""
IDTIX Core Time — Explicit Clock Protocol
===========================================
Engines never call datetime.now() directly. Time is either passed
explicitly by the caller (e.g. `now` on create_event) or read from
an injected Clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, Union


class Clock(Protocol):
    """Injectable time source."""

    def now_utc(self) -> datetime:
        """Return current UTC time."""
        ...  # pragma: no cover


class SystemClock:
    """Production clock — real system time."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Test clock — returns a fixed timestamp until moved.

    Usage:
        clock = FixedClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        clock.advance(60)
    """

    def __init__(self, fixed_dt: datetime) -> None:
        self._fixed_dt = _require_aware(fixed_dt)

    def now_utc(self) -> datetime:
        return self._fixed_dt

    def set(self, fixed_dt: datetime) -> None:
        self._fixed_dt = _require_aware(fixed_dt)

    def advance(self, delta: Union[float, timedelta]) -> None:
        """Move the clock forward by seconds or a timedelta."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self._fixed_dt = self._fixed_dt + delta


def _require_aware(value: datetime) -> datetime:
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise ValueError("FixedClock requires timezone-aware datetime.")
    return value

