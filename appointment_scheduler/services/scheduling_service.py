from sqlalchemy import func
from sqlalchemy.orm import Session
from datetime import datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Union
import logging

from ..core.config import settings
from ..core.database import storage_guard
from ..core.exceptions import IllegalTransition, NotFound, ValidationError
from ..core.locks import provider_locks
from ..models.appointment import (
    ACTIVE_STATUSES, Appointment, AppointmentStatus, AppointmentStatusChange, Urgency
)
from ..models.provider import ProviderCategory
from ..schemas.appointment import AppointmentFilter, AppointmentUpdate
from .availability_store import AvailabilityStore
from .booking_state_machine import BookingStateMachine
from .conflict_resolver import ConflictResolver
from .events import EventPublisher, TransitionEvent, event_publisher
from .timeslots import DateRange, Slot, TimeRange, utcnow

logger = logging.getLogger(__name__)

class SchedulingService:
    """Books, reschedules and moves appointments through their lifecycle.

    Every write for a provider runs under that provider's lock, so the
    conflict check and the commit that follows it are atomic with respect
    to other requests for the same provider.
    """

    def __init__(
        self,
        db: Session,
        locks=None,
        clock: Callable[[], datetime] = utcnow,
        publisher: Optional[EventPublisher] = None,
        immediate_confirmation: Optional[bool] = None,
        prevent_patient_overlap: Optional[bool] = None,
    ):
        self.db = db
        self.locks = locks or provider_locks
        self.clock = clock
        self.publisher = publisher or event_publisher
        self.store = AvailabilityStore(db)
        self.resolver = ConflictResolver(self.store)
        self.state_machine = BookingStateMachine(
            settings.IMMEDIATE_CONFIRMATION if immediate_confirmation is None else immediate_confirmation
        )
        self.prevent_patient_overlap = (
            settings.PREVENT_PATIENT_OVERLAP if prevent_patient_overlap is None else prevent_patient_overlap
        )

    # Booking

    def request_appointment(
        self,
        patient_id: str,
        provider_id: int,
        requested: TimeRange,
        reason: Optional[str] = None,
        category: Optional[ProviderCategory] = None,
        urgency: Urgency = Urgency.ROUTINE,
        notes: Optional[str] = None,
    ) -> Appointment:
        """Book ``requested`` with the provider or raise the conflict that prevents it."""
        now = self.clock()
        if not patient_id:
            raise ValidationError("Patient id is required")
        self._validate_request(requested, now, reason)
        provider = self.store.get_provider(provider_id)

        with self.locks.hold(provider_id):
            with storage_guard(self.db):
                self.db.expire_all()
                result = self.resolver.check_availability(
                    provider_id,
                    requested,
                    self._active_for_provider(provider_id, requested),
                    self._active_for_patient(patient_id, requested),
                )
                if not result.ok:
                    logger.info(
                        f"Booking rejected for patient {patient_id} with provider {provider_id} "
                        f"at {requested.start}: {result.reason}"
                    )
                    raise result.to_error()

                appointment = Appointment(
                    patient_id=patient_id,
                    provider_id=provider_id,
                    start=requested.start,
                    end=requested.end,
                    reason=reason,
                    category=category or provider.category,
                    urgency=urgency,
                    notes=notes,
                )
                self.state_machine.start(appointment, actor=patient_id, now=now)
                self.db.add(appointment)
                self.db.flush()

                event = self.state_machine.created_event(appointment, patient_id, now)
                self.publisher.stage(self.db, event)
                self.db.commit()

        logger.info(
            f"Appointment {appointment.id} booked for patient {patient_id} with provider "
            f"{provider_id} at {requested.start} ({appointment.status.value})"
        )
        self.publisher.publish([event])
        return appointment

    def update_appointment(self, appointment_id: int, patch: AppointmentUpdate) -> Appointment:
        """Apply ``patch``; a new time range goes through the full conflict check.

        A patch may give only one end of the range; the other comes from the
        record as re-read under the provider lock.
        """
        current = self.get_appointment(appointment_id)
        provider_id = current.provider_id
        now = self.clock()

        self._validate_reason(patch.reason)
        if patch.start is not None and patch.end is not None:
            requested = TimeRange(patch.start, patch.end)
            if (requested.start, requested.end) != (current.start, current.end):
                self._validate_request(requested, now, None)
        elif patch.start is not None and patch.start != current.start and patch.start <= now:
            raise ValidationError(
                "Appointment must start in the future", start=patch.start, now=now
            )

        events: List[TransitionEvent] = []
        with self.locks.hold(provider_id):
            with storage_guard(self.db):
                self.db.expire_all()
                appointment = self.get_appointment(appointment_id)
                if self.state_machine.is_terminal(appointment.status):
                    status = appointment.status.value
                    raise IllegalTransition(
                        status, status, f"A {status} appointment can no longer be modified"
                    )

                new_range = None
                if patch.changes_time:
                    new_range = TimeRange(
                        patch.start or appointment.start, patch.end or appointment.end
                    )
                moved = new_range is not None and (new_range.start, new_range.end) != (
                    appointment.start, appointment.end
                )
                if moved:
                    self._validate_request(new_range, now, None)
                    result = self.resolver.check_availability(
                        provider_id,
                        new_range,
                        self._active_for_provider(provider_id, new_range),
                        self._active_for_patient(appointment.patient_id, new_range),
                        exclude_appointment=appointment.id,
                    )
                    if not result.ok:
                        logger.info(
                            f"Reschedule of appointment {appointment_id} to {new_range.start} "
                            f"rejected: {result.reason}"
                        )
                        raise result.to_error()

                    appointment.start = new_range.start
                    appointment.end = new_range.end
                    events.append(
                        TransitionEvent(
                            appointment_id=appointment.id,
                            event_type="rescheduled",
                            from_status=appointment.status.value,
                            to_status=appointment.status.value,
                            actor=patch.actor,
                            occurred_at=now,
                        )
                    )

                for field in ("reason", "category", "urgency", "notes"):
                    value = getattr(patch, field)
                    if value is not None:
                        setattr(appointment, field, value)
                appointment.updated_at = now

                for event in events:
                    self.publisher.stage(self.db, event)
                self.db.commit()

        self.publisher.publish(events)
        return appointment

    # Lifecycle

    def cancel_appointment(
        self,
        appointment_id: int,
        actor: str,
        override: bool = False,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Cancel and release the slot; after the start only with ``override``."""
        return self._transition(appointment_id, AppointmentStatus.CANCELLED, actor, override, reason)

    def confirm_appointment(self, appointment_id: int, actor: str, reason: Optional[str] = None) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.CONFIRMED, actor, reason=reason)

    def complete_appointment(self, appointment_id: int, actor: str, reason: Optional[str] = None) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.COMPLETED, actor, reason=reason)

    def mark_no_show(self, appointment_id: int, actor: str, reason: Optional[str] = None) -> Appointment:
        return self._transition(appointment_id, AppointmentStatus.NO_SHOW, actor, reason=reason)

    def _transition(
        self,
        appointment_id: int,
        target: AppointmentStatus,
        actor: str,
        override: bool = False,
        reason: Optional[str] = None,
    ) -> Appointment:
        provider_id = self.get_appointment(appointment_id).provider_id

        with self.locks.hold(provider_id):
            with storage_guard(self.db):
                self.db.expire_all()
                appointment = self.get_appointment(appointment_id)
                event = self.state_machine.transition(
                    appointment, target, actor, now=self.clock(), override=override, reason=reason
                )
                self.publisher.stage(self.db, event)
                self.db.commit()

        self.publisher.publish([event])
        return appointment

    # Queries

    def get_appointment(self, appointment_id: int) -> Appointment:
        with storage_guard(self.db):
            appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFound(
                f"Appointment {appointment_id} not found", appointment_id=appointment_id
            )
        return appointment

    def status_history(self, appointment_id: int) -> List[AppointmentStatusChange]:
        return list(self.get_appointment(appointment_id).history)

    def list_appointments(self, filter: Optional[AppointmentFilter] = None) -> List[Appointment]:
        """Appointments matching every given criterion, earliest first.

        The time-range criterion matches appointments overlapping
        [filter.start, filter.end).
        """
        filter = filter or AppointmentFilter()
        if filter.start and filter.end and filter.end <= filter.start:
            raise ValidationError(
                "Filter end must be after its start", start=filter.start, end=filter.end
            )

        with storage_guard(self.db):
            query = self.db.query(Appointment)
            if filter.provider_id is not None:
                query = query.filter(Appointment.provider_id == filter.provider_id)
            if filter.patient_id is not None:
                query = query.filter(Appointment.patient_id == filter.patient_id)
            if filter.category is not None:
                query = query.filter(Appointment.category == filter.category)
            if filter.status is not None:
                query = query.filter(Appointment.status == filter.status)
            if filter.start is not None:
                query = query.filter(Appointment.end > filter.start)
            if filter.end is not None:
                query = query.filter(Appointment.start < filter.end)
            return query.order_by(Appointment.start, Appointment.id).all()

    def available_slots(
        self,
        provider_id: int,
        date_range: DateRange,
        appointment_duration: Optional[Union[int, timedelta]] = None,
    ) -> List[Slot]:
        """Materialized slots minus time held by requested/confirmed appointments."""
        slots = self.store.materialize_slots(provider_id, date_range, appointment_duration)
        taken = [
            TimeRange(a.start, a.end)
            for a in self._active_for_provider(provider_id, date_range.as_time_range())
        ]
        return [s for s in slots if not any(s.range.overlaps(t) for t in taken)]

    def appointment_stats(self, provider_id: Optional[int] = None) -> Dict[AppointmentStatus, int]:
        with storage_guard(self.db):
            query = self.db.query(Appointment.status, func.count(Appointment.id))
            if provider_id is not None:
                query = query.filter(Appointment.provider_id == provider_id)
            counts = dict(query.group_by(Appointment.status).all())
        return {status: counts.get(status, 0) for status in AppointmentStatus}

    # Helpers

    def _active_for_provider(self, provider_id: int, around: TimeRange) -> List[Appointment]:
        with storage_guard(self.db):
            return (
                self.db.query(Appointment)
                .filter(
                    Appointment.provider_id == provider_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.start < around.end,
                    Appointment.end > around.start,
                )
                .order_by(Appointment.start, Appointment.id)
                .all()
            )

    def _active_for_patient(self, patient_id: str, around: TimeRange) -> List[Appointment]:
        if not self.prevent_patient_overlap:
            return []
        with storage_guard(self.db):
            return (
                self.db.query(Appointment)
                .filter(
                    Appointment.patient_id == patient_id,
                    Appointment.status.in_(ACTIVE_STATUSES),
                    Appointment.start < around.end,
                    Appointment.end > around.start,
                )
                .all()
            )

    def _validate_request(self, requested: TimeRange, now: datetime, reason: Optional[str]) -> None:
        minutes = requested.duration.total_seconds() / 60
        if not settings.MIN_APPOINTMENT_MINUTES <= minutes <= settings.MAX_APPOINTMENT_MINUTES:
            raise ValidationError(
                f"Appointment duration must be between {settings.MIN_APPOINTMENT_MINUTES} "
                f"and {settings.MAX_APPOINTMENT_MINUTES} minutes",
                duration_minutes=minutes,
            )

        next_midnight = datetime.combine(requested.start.date() + timedelta(days=1), time.min)
        if requested.end > next_midnight:
            raise ValidationError(
                "Appointment must start and end on the same day",
                start=requested.start,
                end=requested.end,
            )

        if requested.start <= now:
            raise ValidationError(
                "Appointment must start in the future", start=requested.start, now=now
            )

        self._validate_reason(reason)

    @staticmethod
    def _validate_reason(reason: Optional[str]) -> None:
        if reason is not None and len(reason) > settings.MAX_REASON_LENGTH:
            raise ValidationError(
                f"Reason cannot exceed {settings.MAX_REASON_LENGTH} characters",
                length=len(reason),
            )
