"""Calendar value types.

Times of day are plain ints counting minutes since midnight. Dates are
``datetime.date`` values read in the business's local timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

MINUTES_PER_DAY = 24 * 60


def local_now(timezone_name: str) -> datetime:
    """Current wall-clock time in ``timezone_name``, as a naive datetime."""
    return datetime.now(ZoneInfo(timezone_name)).replace(tzinfo=None)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form audit columns are stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def floor_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'Minutes out of range for a time of day: {minutes}')
    return time(minutes // 60, minutes % 60)


def format_hhmm(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


@dataclass(frozen=True, order=True)
class Interval:
    """Half-open range ``[start, end)`` of minutes within one day."""

    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < MINUTES_PER_DAY:
            raise ValueError(f'Interval start out of range: {self.start}')
        if not 0 < self.end <= MINUTES_PER_DAY:
            raise ValueError(f'Interval end out of range: {self.end}')
        if self.start >= self.end:
            raise ValueError(f'Interval start must be before end: {self.start} >= {self.end}')

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, other: Interval) -> bool:
        return self.start <= other.start and other.end <= self.end


def overlaps(a: Interval, b: Interval) -> bool:
    # Touching endpoints do not overlap.
    return a.start < b.end and b.start < a.end


@dataclass(frozen=True)
class WeeklySchedule:
    """Open hours per weekday, keyed by ``date.weekday()`` (Monday is 0)."""

    open_hours: dict[int, Interval]

    def hours_for(self, day: date) -> Interval | None:
        return self.open_hours.get(day.weekday())


@dataclass(frozen=True)
class BlackoutWindow:
    interval: Interval
    recurring: bool = False
    date: date | None = None
    reason: str | None = None

    def applies_to(self, day: date) -> bool:
        return self.recurring or self.date == day


@dataclass(frozen=True)
class BookedInterval:
    """The part of an existing appointment the availability engine cares about."""

    provider_id: int
    date: date
    interval: Interval
    status: str
    appointment_id: int | None = None
