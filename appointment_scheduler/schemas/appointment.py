from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional

from ..models.appointment import AppointmentStatus, Urgency
from ..models.provider import ProviderCategory

class AppointmentCreate(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=64)
    provider_id: int
    start: datetime
    end: datetime
    reason: Optional[str] = None
    category: Optional[ProviderCategory] = None
    urgency: Urgency = Urgency.ROUTINE
    notes: Optional[str] = Field(None, max_length=2000)

class AppointmentUpdate(BaseModel):
    """Partial update; only the fields that are set are applied."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    reason: Optional[str] = None
    category: Optional[ProviderCategory] = None
    urgency: Optional[Urgency] = None
    notes: Optional[str] = Field(None, max_length=2000)
    actor: str = "system"

    @property
    def changes_time(self) -> bool:
        return self.start is not None or self.end is not None

class TransitionRequest(BaseModel):
    actor: str = Field("system", min_length=1, max_length=64)
    reason: Optional[str] = Field(None, max_length=500)

class CancelRequest(TransitionRequest):
    # Provider-initiated cancellations may bypass the start-time cutoff
    override: bool = False

class AppointmentFilter(BaseModel):
    provider_id: Optional[int] = None
    patient_id: Optional[str] = None
    category: Optional[ProviderCategory] = None
    status: Optional[AppointmentStatus] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

class StatusChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: AppointmentStatus
    changed_by: str
    reason: Optional[str] = None
    changed_at: datetime

class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: str
    provider_id: int
    start: datetime
    end: datetime
    status: AppointmentStatus
    reason: Optional[str] = None
    category: ProviderCategory
    urgency: Urgency
    notes: Optional[str] = None
    cancelled_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AppointmentDetailResponse(AppointmentResponse):
    history: List[StatusChangeResponse] = []

class AppointmentStats(BaseModel):
    total: int
    by_status: Dict[AppointmentStatus, int]
