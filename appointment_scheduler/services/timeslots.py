"""Time values shared by the availability store, resolver and service.

All timestamps are naive datetimes on one canonical UTC clock.
Ranges are half-open: [start, end).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Union

from ..core.exceptions import InvalidInterval, ValidationError


def utcnow() -> datetime:
    """The canonical clock."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_duration(value: Union[int, timedelta]) -> timedelta:
    """Accept minutes or a timedelta; reject non-positive durations."""
    if isinstance(value, timedelta):
        duration = value
    else:
        duration = timedelta(minutes=value)
    if duration <= timedelta(0):
        raise ValidationError(
            "Appointment duration must be positive",
            duration_minutes=duration.total_seconds() / 60,
        )
    return duration


@dataclass(frozen=True)
class TimeRange:
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise InvalidInterval(
                "Interval end must be after its start",
                start=self.start,
                end=self.end,
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeRange") -> bool:
        # Touching boundaries do not overlap
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True)
class DateRange:
    """Calendar days from ``start`` to ``end``, both inclusive."""

    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise InvalidInterval(
                "Date range end must not precede its start",
                start=self.start.isoformat(),
                end=self.end.isoformat(),
            )

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def as_time_range(self) -> TimeRange:
        return TimeRange(
            datetime.combine(self.start, time.min),
            datetime.combine(self.end + timedelta(days=1), time.min),
        )


@dataclass(frozen=True)
class WeeklyWindow:
    """A recurring block of availability; weekday 0 is Monday."""

    weekday: int
    start_time: time
    end_time: time

    def on(self, day: date) -> TimeRange:
        return TimeRange(
            datetime.combine(day, self.start_time),
            datetime.combine(day, self.end_time),
        )


@dataclass(frozen=True)
class Slot:
    provider_id: int
    start: datetime
    end: datetime

    @property
    def range(self) -> TimeRange:
        return TimeRange(self.start, self.end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start
