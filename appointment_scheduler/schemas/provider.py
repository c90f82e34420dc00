from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, time
from typing import List, Optional

from ..models.provider import ProviderCategory

class ProviderCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    category: ProviderCategory
    appointment_minutes: Optional[int] = None

class ProviderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: ProviderCategory
    appointment_minutes: int
    is_active: bool
    created_at: Optional[datetime] = None

class AvailabilityWindowSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    weekday: int = Field(..., ge=0, le=6, description="0 is Monday")
    start_time: time
    end_time: time

class AvailabilityUpdate(BaseModel):
    windows: List[AvailabilityWindowSchema]

class BlackoutCreate(BaseModel):
    start: datetime
    end: datetime
    reason: Optional[str] = Field(None, max_length=255)

class BlackoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: int
    start: datetime
    end: datetime
    reason: Optional[str] = None

class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider_id: int
    start: datetime
    end: datetime
