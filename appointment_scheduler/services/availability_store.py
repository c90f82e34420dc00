import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.database import storage_guard
from ..core.exceptions import InvalidWindow, NotFound
from ..models.provider import AvailabilityWindow, Blackout, Provider
from .timeslots import DateRange, Slot, TimeRange, WeeklyWindow, to_duration

logger = logging.getLogger(__name__)


class SlotSequence:
    """Lazy, restartable view over the slots of a snapshot of availability.

    Each iteration walks the date range again; nothing is stored.
    """

    def __init__(
        self,
        provider_id: int,
        date_range: DateRange,
        duration: timedelta,
        windows: Sequence[WeeklyWindow],
        blackouts: Sequence[TimeRange],
    ):
        self.provider_id = provider_id
        self.date_range = date_range
        self.duration = duration
        self._by_weekday: Dict[int, List[WeeklyWindow]] = defaultdict(list)
        for window in sorted(windows, key=lambda w: (w.weekday, w.start_time)):
            self._by_weekday[window.weekday].append(window)
        self._blackouts = sorted(blackouts, key=lambda b: b.start)

    def __iter__(self) -> Iterator[Slot]:
        for day in self.date_range.days():
            for window in self._by_weekday.get(day.weekday(), ()):
                span = window.on(day)
                blackouts = [b for b in self._blackouts if b.overlaps(span)]
                cursor = span.start
                while cursor + self.duration <= span.end:
                    candidate = TimeRange(cursor, cursor + self.duration)
                    if not any(candidate.overlaps(b) for b in blackouts):
                        yield Slot(self.provider_id, candidate.start, candidate.end)
                    cursor = candidate.end


class AvailabilityStore:
    """Provider weekly templates and blackout periods."""

    def __init__(self, db: Session):
        self.db = db

    def get_provider(self, provider_id: int) -> Provider:
        with storage_guard(self.db):
            provider = self.db.get(Provider, provider_id)
        if provider is None:
            raise NotFound(f"Provider {provider_id} not found", provider_id=provider_id)
        return provider

    def get_windows(self, provider_id: int) -> List[WeeklyWindow]:
        provider = self.get_provider(provider_id)
        return [
            WeeklyWindow(w.weekday, w.start_time, w.end_time)
            for w in provider.windows
        ]

    def set_recurring_availability(
        self, provider_id: int, windows: Iterable[WeeklyWindow]
    ) -> List[WeeklyWindow]:
        """Replace the provider's weekly template."""
        windows = list(windows)
        _validate_windows(windows)
        provider = self.get_provider(provider_id)

        with storage_guard(self.db):
            provider.windows = [
                AvailabilityWindow(
                    weekday=w.weekday,
                    start_time=w.start_time,
                    end_time=w.end_time,
                )
                for w in windows
            ]
            self.db.commit()

        logger.info(f"Provider {provider_id} availability replaced with {len(windows)} windows")
        return sorted(windows, key=lambda w: (w.weekday, w.start_time))

    def add_blackout(
        self,
        provider_id: int,
        interval: Union[TimeRange, Sequence[datetime]],
        reason: Optional[str] = None,
    ) -> Blackout:
        if not isinstance(interval, TimeRange):
            interval = TimeRange(*interval)
        provider = self.get_provider(provider_id)

        with storage_guard(self.db):
            blackout = Blackout(
                provider_id=provider.id,
                start=interval.start,
                end=interval.end,
                reason=reason,
            )
            self.db.add(blackout)
            self.db.commit()
            self.db.refresh(blackout)

        logger.info(f"Blackout {interval.start} - {interval.end} added for provider {provider_id}")
        return blackout

    def remove_blackout(self, provider_id: int, blackout_id: int) -> None:
        with storage_guard(self.db):
            blackout = self.db.get(Blackout, blackout_id)
            if blackout is None or blackout.provider_id != provider_id:
                raise NotFound(
                    f"Blackout {blackout_id} not found",
                    provider_id=provider_id,
                    blackout_id=blackout_id,
                )
            self.db.delete(blackout)
            self.db.commit()

    def list_blackouts(
        self,
        provider_id: int,
        within: Optional[TimeRange] = None,
    ) -> List[Blackout]:
        self.get_provider(provider_id)
        with storage_guard(self.db):
            query = self.db.query(Blackout).filter(Blackout.provider_id == provider_id)
            if within is not None:
                query = query.filter(Blackout.start < within.end, Blackout.end > within.start)
            return query.order_by(Blackout.start, Blackout.id).all()

    def blackout_ranges(
        self, provider_id: int, within: Optional[TimeRange] = None
    ) -> List[TimeRange]:
        return [TimeRange(b.start, b.end) for b in self.list_blackouts(provider_id, within)]

    def materialize_slots(
        self,
        provider_id: int,
        date_range: DateRange,
        appointment_duration: Optional[Union[int, timedelta]] = None,
    ) -> SlotSequence:
        """Candidate slots over ``date_range`` with blackout-covered time removed.

        Slots are cut on a grid anchored at each window's start; a trailing
        remainder shorter than the duration yields nothing. Defaults to the
        provider's configured appointment length.
        """
        provider = self.get_provider(provider_id)
        if appointment_duration is None:
            appointment_duration = provider.appointment_minutes
        duration = to_duration(appointment_duration)

        windows = [] if not provider.is_active else self.get_windows(provider_id)
        blackouts = self.blackout_ranges(provider_id, date_range.as_time_range())
        return SlotSequence(provider_id, date_range, duration, windows, blackouts)


def _validate_windows(windows: Sequence[WeeklyWindow]) -> None:
    for window in windows:
        if not 0 <= window.weekday <= 6:
            raise InvalidWindow(
                "Weekday must be between 0 (Monday) and 6 (Sunday)",
                weekday=window.weekday,
            )
        if window.end_time <= window.start_time:
            raise InvalidWindow(
                "Availability window must end after it starts",
                weekday=window.weekday,
                start_time=window.start_time.isoformat(),
                end_time=window.end_time.isoformat(),
            )

    ordered = sorted(windows, key=lambda w: (w.weekday, w.start_time))
    for previous, current in zip(ordered, ordered[1:]):
        if previous.weekday == current.weekday and current.start_time < previous.end_time:
            raise InvalidWindow(
                "Availability windows overlap",
                weekday=current.weekday,
                start_time=current.start_time.isoformat(),
                end_time=previous.end_time.isoformat(),
            )
