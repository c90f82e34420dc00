import pytest

from appointment_scheduler.core.exceptions import IllegalTransition, TooLateToCancel
from appointment_scheduler.models.appointment import Appointment, AppointmentStatus
from appointment_scheduler.services.booking_state_machine import (
    TERMINAL_STATUSES, TRANSITIONS, BookingStateMachine
)
from tests.conftest import at

S = AppointmentStatus

BEFORE_START = at(9, 0)
DURING = at(10, 15)
AFTER_END = at(11, 0)

# Every (current, target) pair outside the transition table
ILLEGAL_PAIRS = [
    (current, target)
    for current in S
    for target in S
    if (current, target) not in TRANSITIONS
]


def new_appointment(status=None):
    appointment = Appointment(
        id=1,
        patient_id="patient-1",
        provider_id=1,
        start=at(10, 0),
        end=at(10, 30),
    )
    if status is not None:
        appointment.status = status
    return appointment


@pytest.fixture
def machine():
    return BookingStateMachine()


class TestStart:

    def test_new_appointments_are_requested(self, machine):
        appointment = new_appointment()

        machine.start(appointment, actor="patient-1", now=BEFORE_START)

        assert appointment.status == S.REQUESTED
        assert appointment.created_at == BEFORE_START
        assert len(appointment.history) == 1
        assert appointment.history[0].status == S.REQUESTED
        assert appointment.history[0].changed_by == "patient-1"

    def test_immediate_confirmation(self):
        machine = BookingStateMachine(immediate_confirmation=True)
        appointment = new_appointment()

        machine.start(appointment, actor="patient-1", now=BEFORE_START)

        assert appointment.status == S.CONFIRMED

    def test_created_event(self, machine):
        appointment = new_appointment()
        machine.start(appointment, actor="patient-1", now=BEFORE_START)

        event = machine.created_event(appointment, "patient-1", BEFORE_START)

        assert event.event_type == "created"
        assert event.from_status is None
        assert event.to_status == "requested"
        assert event.appointment_id == 1


class TestTransitions:

    def test_confirm(self, machine):
        appointment = new_appointment(S.REQUESTED)

        event = machine.transition(appointment, S.CONFIRMED, "dr-naidoo", now=BEFORE_START)

        assert appointment.status == S.CONFIRMED
        assert appointment.updated_at == BEFORE_START
        assert event.event_type == "confirmed"
        assert (event.from_status, event.to_status) == ("requested", "confirmed")
        assert event.actor == "dr-naidoo"

    @pytest.mark.parametrize("current", [S.REQUESTED, S.CONFIRMED])
    def test_cancel_before_start(self, machine, current):
        appointment = new_appointment(current)

        event = machine.transition(
            appointment, S.CANCELLED, "patient-1", now=BEFORE_START, reason="Feeling better"
        )

        assert appointment.status == S.CANCELLED
        assert appointment.cancelled_reason == "Feeling better"
        assert appointment.history[-1].reason == "Feeling better"
        assert event.event_type == "cancelled"

    def test_complete_after_end(self, machine):
        appointment = new_appointment(S.CONFIRMED)
        event = machine.transition(appointment, S.COMPLETED, "dr-naidoo", now=AFTER_END)
        assert appointment.status == S.COMPLETED
        assert event.event_type == "completed"

    def test_no_show_after_start(self, machine):
        appointment = new_appointment(S.CONFIRMED)
        event = machine.transition(appointment, S.NO_SHOW, "dr-naidoo", now=DURING)
        assert appointment.status == S.NO_SHOW
        assert event.event_type == "no_show"

    @pytest.mark.parametrize("current,target", ILLEGAL_PAIRS)
    def test_pairs_outside_table_are_rejected(self, machine, current, target):
        appointment = new_appointment(current)

        with pytest.raises(IllegalTransition) as exc_info:
            machine.transition(appointment, target, "dr-naidoo", now=AFTER_END, override=True)

        assert appointment.status == current
        assert exc_info.value.current == current.value
        assert exc_info.value.target == target.value

    def test_terminal_statuses_have_no_exits(self):
        for (current, _target) in TRANSITIONS:
            assert current not in TERMINAL_STATUSES

    def test_rejected_transition_leaves_no_history(self, machine):
        appointment = new_appointment(S.CANCELLED)
        with pytest.raises(IllegalTransition):
            machine.transition(appointment, S.CONFIRMED, "dr-naidoo", now=BEFORE_START)
        assert appointment.history == []


class TestGuards:

    @pytest.mark.parametrize("now", [at(10, 0), DURING, AFTER_END])
    def test_cancel_at_or_after_start(self, machine, now):
        appointment = new_appointment(S.CONFIRMED)

        with pytest.raises(TooLateToCancel):
            machine.transition(appointment, S.CANCELLED, "patient-1", now=now)

        assert appointment.status == S.CONFIRMED

    def test_override_allows_late_cancel(self, machine):
        appointment = new_appointment(S.CONFIRMED)
        machine.transition(appointment, S.CANCELLED, "admin", now=DURING, override=True)
        assert appointment.status == S.CANCELLED

    def test_complete_before_end(self, machine):
        appointment = new_appointment(S.CONFIRMED)
        with pytest.raises(IllegalTransition):
            machine.transition(appointment, S.COMPLETED, "dr-naidoo", now=DURING)
        assert appointment.status == S.CONFIRMED

    def test_no_show_before_start(self, machine):
        appointment = new_appointment(S.CONFIRMED)
        with pytest.raises(IllegalTransition):
            machine.transition(appointment, S.NO_SHOW, "dr-naidoo", now=BEFORE_START)
