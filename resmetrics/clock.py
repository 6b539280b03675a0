"""Clocks used to measure metric freshness and request durations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class RealClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def since(self, moment: datetime) -> timedelta:
        return self.now() - moment


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now if now is not None else _ZERO_TIME

    def now(self) -> datetime:
        return self._now

    def since(self, moment: datetime) -> timedelta:
        return self._now - moment

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)