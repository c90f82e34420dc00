from fastapi import APIRouter, Depends, status
from datetime import date
from typing import List, Optional

from ...api.deps import get_availability_store, get_provider_registry, get_scheduling_service
from ...models.provider import ProviderCategory
from ...schemas.provider import (
    AvailabilityUpdate, AvailabilityWindowSchema, BlackoutCreate, BlackoutResponse,
    ProviderCreate, ProviderResponse, SlotResponse
)
from ...services.availability_store import AvailabilityStore
from ...services.provider_registry import ProviderRegistry
from ...services.scheduling_service import SchedulingService
from ...services.timeslots import DateRange, TimeRange, WeeklyWindow

router = APIRouter(prefix="/providers", tags=["Providers"])

@router.post("", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
def create_provider(
    provider_data: ProviderCreate,
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    """Register a bookable provider."""
    return ProviderResponse.model_validate(registry.create_provider(provider_data))

@router.get("", response_model=List[ProviderResponse])
def list_providers(
    category: Optional[ProviderCategory] = None,
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    return [ProviderResponse.model_validate(p) for p in registry.list_providers(category)]

@router.get("/{provider_id}", response_model=ProviderResponse)
def get_provider(
    provider_id: int,
    registry: ProviderRegistry = Depends(get_provider_registry),
):
    return ProviderResponse.model_validate(registry.get_provider(provider_id))

@router.get("/{provider_id}/availability", response_model=List[AvailabilityWindowSchema])
def get_availability(
    provider_id: int,
    store: AvailabilityStore = Depends(get_availability_store),
):
    return [AvailabilityWindowSchema.model_validate(w) for w in store.get_windows(provider_id)]

@router.put("/{provider_id}/availability", response_model=List[AvailabilityWindowSchema])
def set_availability(
    provider_id: int,
    availability: AvailabilityUpdate,
    store: AvailabilityStore = Depends(get_availability_store),
):
    """Replace the provider's weekly availability template."""
    windows = [WeeklyWindow(w.weekday, w.start_time, w.end_time) for w in availability.windows]
    saved = store.set_recurring_availability(provider_id, windows)
    return [AvailabilityWindowSchema.model_validate(w) for w in saved]

@router.get("/{provider_id}/blackouts", response_model=List[BlackoutResponse])
def list_blackouts(
    provider_id: int,
    store: AvailabilityStore = Depends(get_availability_store),
):
    return [BlackoutResponse.model_validate(b) for b in store.list_blackouts(provider_id)]

@router.post(
    "/{provider_id}/blackouts",
    response_model=BlackoutResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_blackout(
    provider_id: int,
    blackout_data: BlackoutCreate,
    store: AvailabilityStore = Depends(get_availability_store),
):
    """Block out a one-off period, e.g. a holiday."""
    blackout = store.add_blackout(
        provider_id,
        TimeRange(blackout_data.start, blackout_data.end),
        reason=blackout_data.reason,
    )
    return BlackoutResponse.model_validate(blackout)

@router.delete("/{provider_id}/blackouts/{blackout_id}")
def remove_blackout(
    provider_id: int,
    blackout_id: int,
    store: AvailabilityStore = Depends(get_availability_store),
):
    store.remove_blackout(provider_id, blackout_id)
    return {"message": "Blackout removed successfully"}

@router.get("/{provider_id}/slots", response_model=List[SlotResponse])
def available_slots(
    provider_id: int,
    start_date: date,
    end_date: date,
    duration_minutes: Optional[int] = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Bookable slots between two dates, both inclusive."""
    slots = service.available_slots(
        provider_id, DateRange(start_date, end_date), duration_minutes
    )
    return [SlotResponse.model_validate(s) for s in slots]
