"""
Conflict detection for booking requests.

A requested range is checked in a fixed order and the first failing rule
wins:

1. OutsideAvailability - not contained in a single slot of one weekly window
2. BlackoutOverlap     - intersects a blackout
3. DoubleBooked        - overlaps a requested/confirmed appointment of the provider
4. PatientDoubleBooked - overlaps another active appointment of the same patient
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Optional, Sequence, Type, Union

from ..core import exceptions
from ..models.appointment import Appointment
from .availability_store import AvailabilityStore
from .timeslots import TimeRange, WeeklyWindow


@dataclass(frozen=True)
class Available:
    ok = True


@dataclass(frozen=True)
class Conflict:
    reason: str
    message: str
    interval: Optional[TimeRange] = None
    appointment_id: Optional[int] = None

    ok = False

    def to_error(self) -> exceptions.ConflictError:
        error_class: Type[exceptions.ConflictError] = getattr(exceptions, self.reason)
        return error_class(
            self.message,
            conflicting_start=self.interval.start if self.interval else None,
            conflicting_end=self.interval.end if self.interval else None,
            conflicting_id=self.appointment_id,
        )


AvailabilityResult = Union[Available, Conflict]


def containing_slot(
    window: TimeRange, duration: timedelta, requested: TimeRange
) -> Optional[TimeRange]:
    """The grid slot of ``window`` that holds all of ``requested``, if any.

    Slots are cut from the window start, so the candidate is the slot the
    requested start falls in.
    """
    if requested.start < window.start:
        return None
    index = (requested.start - window.start) // duration
    slot = TimeRange(
        window.start + index * duration,
        window.start + (index + 1) * duration,
    )
    if slot.end <= window.end and slot.contains(requested):
        return slot
    return None


def first_overlapping(
    requested: TimeRange,
    appointments: Iterable[Appointment],
    exclude_id: Optional[int] = None,
) -> Optional[Appointment]:
    hits = [
        a for a in appointments
        if a.is_active
        and a.id != exclude_id
        and requested.overlaps(TimeRange(a.start, a.end))
    ]
    return min(hits, key=lambda a: (a.start, a.id)) if hits else None


class ConflictResolver:
    def __init__(self, store: AvailabilityStore):
        self.store = store

    def check_availability(
        self,
        provider_id: int,
        requested: TimeRange,
        existing_appointments: Sequence[Appointment],
        patient_appointments: Sequence[Appointment] = (),
        exclude_appointment: Optional[int] = None,
    ) -> AvailabilityResult:
        """
        Decide whether ``requested`` can be booked with ``provider_id``.

        Args:
            provider_id: provider being booked
            requested: the half-open range asked for
            existing_appointments: the provider's appointments near the range
            patient_appointments: the patient's appointments near the range
            exclude_appointment: id ignored by the overlap rules (reschedules)

        Returns:
            Available, or a Conflict carrying the reason and offending interval
        """
        provider = self.store.get_provider(provider_id)
        duration = timedelta(minutes=provider.appointment_minutes)

        windows = self.store.get_windows(provider_id) if provider.is_active else []
        if not self._within_availability(requested, windows, duration):
            return Conflict(
                "OutsideAvailability",
                "Requested time does not fit within one of the provider's slots",
                interval=requested,
            )

        for blackout in self.store.blackout_ranges(provider_id, requested):
            if requested.overlaps(blackout):
                return Conflict(
                    "BlackoutOverlap",
                    "Provider is unavailable during the requested time",
                    interval=blackout,
                )

        clash = first_overlapping(requested, existing_appointments, exclude_appointment)
        if clash is not None:
            return Conflict(
                "DoubleBooked",
                "Provider already has an appointment during the requested time",
                interval=TimeRange(clash.start, clash.end),
                appointment_id=clash.id,
            )

        clash = first_overlapping(requested, patient_appointments, exclude_appointment)
        if clash is not None:
            return Conflict(
                "PatientDoubleBooked",
                "Patient already has an appointment during the requested time",
                interval=TimeRange(clash.start, clash.end),
                appointment_id=clash.id,
            )

        return Available()

    @staticmethod
    def _within_availability(
        requested: TimeRange,
        windows: Sequence[WeeklyWindow],
        duration: timedelta,
    ) -> bool:
        day = requested.start.date()
        for window in windows:
            if window.weekday != day.weekday():
                continue
            if containing_slot(window.on(day), duration, requested) is not None:
                return True
        return False
