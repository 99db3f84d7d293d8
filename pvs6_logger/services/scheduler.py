# pvs6_logger/services/scheduler.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, Callable, Optional


UNIT_SECONDS = {"d": 60 * 60 * 24, "h": 60 * 60, "m": 60, "s": 1}

_UNIT_ALIASES = {
    "day": "d", "days": "d",
    "hour": "h", "hours": "h",
    "minute": "m", "minutes": "m", "min": "m",
    "second": "s", "seconds": "s", "sec": "s",
}

# Wall-clock buckets a schedule is aligned to; anything longer aligns to a day.
ALIGNMENT_LADDER = (
    60,
    60 * 5,
    60 * 10,
    60 * 15,
    60 * 30,
    60 * 60,
    60 * 60 * 2,
    60 * 60 * 3,
    60 * 60 * 4,
    60 * 60 * 6,
    60 * 60 * 12,
)
DAY_SECONDS = 60 * 60 * 24

MIN_LEAD = timedelta(milliseconds=500)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def normalize_unit(unit: str) -> str:
    key = (unit or "").strip().lower()
    key = _UNIT_ALIASES.get(key, key)
    if key not in UNIT_SECONDS:
        raise ValueError(f"Invalid time unit: {unit!r}. Use d, h, m, or s")
    return key


def interval_seconds(period: int, unit: str) -> int:
    """Convert period x unit to seconds; ValueError on a bad unit or period."""
    if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
        raise ValueError(f"Invalid repeat period: {period!r}. Must be a positive integer")
    return period * UNIT_SECONDS[normalize_unit(unit)]


def alignment_seconds(total_seconds: int) -> int:
    for bucket in ALIGNMENT_LADDER:
        if total_seconds <= bucket:
            return bucket
    return DAY_SECONDS


def round_to_boundary(moment: datetime, bucket_seconds: int) -> datetime:
    """
    Round to the nearest multiple of bucket_seconds since the UTC epoch.
    Exact halves round up. Naive datetimes are taken to be UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    bucket = timedelta(seconds=bucket_seconds)
    remainder = (moment - _EPOCH) % bucket
    floor = moment - remainder
    if remainder * 2 >= bucket:
        return floor + bucket
    return floor


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClockAlignedSchedule:
    """
    Periodic tick source aligned to human-readable clock boundaries.

    A 5 minute schedule fires at :00, :05, :10 ... shifted by ``offset``
    (usually a few hundred ms negative, so the PVS6 stamps its reading on the
    boundary rather than just after it).
    """

    def __init__(
        self,
        period: int,
        unit: str,
        offset: timedelta = timedelta(0),
        *,
        name: str = "schedule",
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.total_seconds = interval_seconds(period, unit)
        self.alignment = alignment_seconds(self.total_seconds)
        self.offset = offset
        self.name = name
        self._clock = clock or _utc_now
        self._sleep = sleep or asyncio.sleep
        self.log = log or logging.getLogger("pvs6.scheduler")
        self.log.debug(
            "%s: repeat interval %ss, aligned to %ss buckets, offset %s",
            name,
            self.total_seconds,
            self.alignment,
            offset,
        )

    @classmethod
    def from_config(cls, schedule_cfg, *, name: str, **kwargs) -> "ClockAlignedSchedule":
        return cls(
            schedule_cfg.period,
            schedule_cfg.unit,
            timedelta(milliseconds=schedule_cfg.offset_ms),
            name=name,
            **kwargs,
        )

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.total_seconds)

    # ------------------------------------------------------------------
    def first_fire(self, now: Optional[datetime] = None) -> datetime:
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        target = round_to_boundary(now, self.alignment) + self.offset
        while target - now < MIN_LEAD:
            target += timedelta(seconds=self.alignment)
        return target

    def next_after(self, fired: datetime, now: datetime) -> datetime:
        """
        Next tick after ``fired``. When the cycle overran, the latest missed
        grid point is returned (so it fires immediately, once) and older ones
        are dropped.
        """
        upcoming = fired + self.interval
        if upcoming > now:
            return upcoming
        behind = (now - fired) // self.interval
        if behind > 1:
            self.log.warning(
                "%s: cycle overran; skipping %d missed tick(s)",
                self.name,
                behind - 1,
            )
        return fired + self.interval * behind

    # ------------------------------------------------------------------
    async def ticks(self) -> AsyncIterator[datetime]:
        """Yield each scheduled fire instant once it has been reached."""
        fire_at = self.first_fire()
        self.log.info(
            "%s: first tick at %s, then every %ss",
            self.name,
            fire_at.isoformat(),
            self.total_seconds,
        )
        while True:
            delay = (fire_at - self._clock()).total_seconds()
            while delay > 0:
                await self._sleep(delay)
                delay = (fire_at - self._clock()).total_seconds()
            yield fire_at
            fire_at = self.next_after(fire_at, self._clock())
