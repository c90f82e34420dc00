from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Time, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base

class ProviderCategory(str, enum.Enum):
    GENERAL_PRACTITIONER = "general_practitioner"
    DENTIST = "dentist"
    SPECIALIST = "specialist"
    CARDIOLOGIST = "cardiologist"
    GYNECOLOGIST = "gynecologist"
    OPHTHALMOLOGIST = "ophthalmologist"
    PSYCHOLOGIST = "psychologist"
    PEDIATRICIAN = "pediatrician"
    DERMATOLOGIST = "dermatologist"
    ORTHOPEDIC = "orthopedic"
    PHYSIOTHERAPIST = "physiotherapist"
    EMERGENCY = "emergency"

class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(200), nullable=False)
    category = Column(SQLEnum(ProviderCategory), nullable=False, index=True)
    appointment_minutes = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    windows = relationship(
        "AvailabilityWindow",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="(AvailabilityWindow.weekday, AvailabilityWindow.start_time)",
    )
    blackouts = relationship(
        "Blackout",
        back_populates="provider",
        cascade="all, delete-orphan",
        order_by="Blackout.start",
    )

    def __repr__(self):
        return f"<Provider(id={self.id}, name='{self.name}', category='{self.category}')>"

class AvailabilityWindow(Base):
    """One weekly recurring (weekday, start, end) block; 0 is Monday."""

    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    provider = relationship("Provider", back_populates="windows")

    def __repr__(self):
        return f"<AvailabilityWindow(provider_id={self.provider_id}, weekday={self.weekday}, {self.start_time}-{self.end_time})>"

class Blackout(Base):
    __tablename__ = "blackouts"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)

    start = Column(DateTime, nullable=False, index=True)
    end = Column(DateTime, nullable=False)
    reason = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())

    provider = relationship("Provider", back_populates="blackouts")

    def __repr__(self):
        return f"<Blackout(id={self.id}, provider_id={self.provider_id}, {self.start} - {self.end})>"
