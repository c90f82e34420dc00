import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from ..core.exceptions import IllegalTransition, TooLateToCancel
from ..models.appointment import Appointment, AppointmentStatus, AppointmentStatusChange
from .events import TransitionEvent

logger = logging.getLogger(__name__)

S = AppointmentStatus


@dataclass(frozen=True)
class Transition:
    trigger: str
    releases_slot: bool = False


TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentStatus], Transition] = {
    (S.REQUESTED, S.CONFIRMED): Transition("confirmed"),
    (S.REQUESTED, S.CANCELLED): Transition("cancelled", releases_slot=True),
    (S.CONFIRMED, S.CANCELLED): Transition("cancelled", releases_slot=True),
    (S.CONFIRMED, S.COMPLETED): Transition("completed"),
    (S.CONFIRMED, S.NO_SHOW): Transition("no_show"),
}

TERMINAL_STATUSES = frozenset({S.CANCELLED, S.COMPLETED, S.NO_SHOW})


class BookingStateMachine:
    """Moves appointments between statuses using the transition table only."""

    def __init__(self, immediate_confirmation: bool = False):
        self.immediate_confirmation = immediate_confirmation

    @property
    def initial_status(self) -> AppointmentStatus:
        return S.CONFIRMED if self.immediate_confirmation else S.REQUESTED

    @staticmethod
    def is_terminal(status: AppointmentStatus) -> bool:
        return status in TERMINAL_STATUSES

    @staticmethod
    def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
        return (current, target) in TRANSITIONS

    def start(self, appointment: Appointment, actor: str, now: datetime) -> None:
        """Put a new appointment in its initial status and record it."""
        appointment.status = self.initial_status
        appointment.created_at = now
        appointment.updated_at = now
        appointment.history.append(
            AppointmentStatusChange(
                status=appointment.status,
                changed_by=actor,
                reason="Appointment created",
                changed_at=now,
            )
        )

    @staticmethod
    def created_event(appointment: Appointment, actor: str, now: datetime) -> TransitionEvent:
        # Needs the id, so call after the appointment has been flushed
        return TransitionEvent(
            appointment_id=appointment.id,
            event_type="created",
            from_status=None,
            to_status=appointment.status.value,
            actor=actor,
            occurred_at=now,
        )

    def transition(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
        actor: str,
        now: datetime,
        override: bool = False,
        reason: Optional[str] = None,
    ) -> TransitionEvent:
        current = appointment.status
        rule = TRANSITIONS.get((current, target))
        if rule is None:
            raise IllegalTransition(current.value, target.value)

        self._check_guard(appointment, target, now, override)

        appointment.status = target
        appointment.updated_at = now
        if target == S.CANCELLED:
            appointment.cancelled_reason = reason
        appointment.history.append(
            AppointmentStatusChange(
                status=target,
                changed_by=actor,
                reason=reason,
                changed_at=now,
            )
        )

        logger.info(
            f"Appointment {appointment.id}: {current.value} -> {target.value} by {actor}"
            + (" (slot released)" if rule.releases_slot else "")
        )
        return TransitionEvent(
            appointment_id=appointment.id,
            event_type=rule.trigger,
            from_status=current.value,
            to_status=target.value,
            actor=actor,
            occurred_at=now,
        )

    @staticmethod
    def _check_guard(
        appointment: Appointment,
        target: AppointmentStatus,
        now: datetime,
        override: bool,
    ) -> None:
        current = appointment.status.value
        if target == S.CANCELLED and now >= appointment.start and not override:
            raise TooLateToCancel(
                "Appointment has already started and can no longer be cancelled",
                appointment_id=appointment.id,
                start=appointment.start,
            )
        if target == S.COMPLETED and now < appointment.end:
            raise IllegalTransition(
                current,
                target.value,
                "Appointment cannot be completed before it ends",
            )
        if target == S.NO_SHOW and now < appointment.start:
            raise IllegalTransition(
                current,
                target.value,
                "Appointment cannot be marked as a no-show before it starts",
            )
