"""Lifecycle events for external notification dispatch.

Events are written to the ``appointment_events`` outbox inside the same
transaction as the change that caused them, then handed to in-process
subscribers once that transaction has committed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..core.database import storage_guard
from ..models.appointment import AppointmentEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    appointment_id: int
    event_type: str
    from_status: Optional[str]
    to_status: Optional[str]
    actor: str
    occurred_at: datetime


Subscriber = Callable[[TransitionEvent], None]


class EventPublisher:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def stage(self, db: Session, event: TransitionEvent) -> None:
        """Add the outbox row to the caller's open transaction."""
        db.add(
            AppointmentEvent(
                appointment_id=event.appointment_id,
                event_type=event.event_type,
                from_status=event.from_status,
                to_status=event.to_status,
                actor=event.actor,
                occurred_at=event.occurred_at,
            )
        )

    def publish(self, events: List[TransitionEvent]) -> None:
        """Notify subscribers of committed events.

        The change is already durable at this point, so a failing subscriber
        is logged and the remaining ones still run.
        """
        for event in events:
            for subscriber in self._subscribers:
                try:
                    subscriber(event)
                except Exception:
                    logger.exception(
                        f"Subscriber failed for {event.event_type} on appointment {event.appointment_id}"
                    )


def pending_events(db: Session, limit: int = 100) -> List[AppointmentEvent]:
    """Undelivered outbox rows, oldest first."""
    with storage_guard(db):
        return (
            db.query(AppointmentEvent)
            .filter(AppointmentEvent.dispatched == False)  # noqa: E712
            .order_by(AppointmentEvent.id)
            .limit(limit)
            .all()
        )


def mark_dispatched(db: Session, event_ids: List[int]) -> int:
    if not event_ids:
        return 0
    with storage_guard(db):
        updated = (
            db.query(AppointmentEvent)
            .filter(AppointmentEvent.id.in_(event_ids))
            .update({"dispatched": True}, synchronize_session=False)
        )
        db.commit()
    return updated


# Process-wide publisher; subscribe notification dispatchers here
event_publisher = EventPublisher()
