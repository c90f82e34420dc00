from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base
from .provider import ProviderCategory

class AppointmentStatus(str, enum.Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

# Statuses that hold a provider's time
ACTIVE_STATUSES = (AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED)

class Urgency(str, enum.Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Identity tokens, trusted as given
    patient_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    # Appointment details
    start = Column(DateTime, nullable=False, index=True)
    end = Column(DateTime, nullable=False)
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.REQUESTED, index=True)
    reason = Column(Text, nullable=True)
    category = Column(SQLEnum(ProviderCategory), nullable=False, index=True)
    urgency = Column(SQLEnum(Urgency), nullable=False, default=Urgency.ROUTINE)
    notes = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())
    cancelled_reason = Column(String(255), nullable=True)

    # Relationships
    provider = relationship("Provider")
    history = relationship(
        "AppointmentStatusChange",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentStatusChange.id",
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, provider_id={self.provider_id}, start='{self.start}', status='{self.status}')>"

class AppointmentStatusChange(Base):
    """Audit trail entry, one per status the appointment entered."""

    __tablename__ = "appointment_status_history"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)

    status = Column(SQLEnum(AppointmentStatus), nullable=False)
    changed_by = Column(String(64), nullable=False)
    reason = Column(String(500), nullable=True)
    changed_at = Column(DateTime, nullable=False)

    appointment = relationship("Appointment", back_populates="history")

    def __repr__(self):
        return f"<AppointmentStatusChange(appointment_id={self.appointment_id}, status='{self.status}')>"

class AppointmentEvent(Base):
    """Outbox row for a lifecycle event; delivery happens outside the core."""

    __tablename__ = "appointment_events"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)

    event_type = Column(String(50), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    actor = Column(String(64), nullable=True)
    occurred_at = Column(DateTime, nullable=False)
    dispatched = Column(Boolean, default=False, index=True)

    def __repr__(self):
        return f"<AppointmentEvent(id={self.id}, appointment_id={self.appointment_id}, type='{self.event_type}')>"
