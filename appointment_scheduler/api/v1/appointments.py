from fastapi import APIRouter, Depends, status
from datetime import datetime
from typing import List, Optional

from ...api.deps import get_scheduling_service
from ...models.appointment import AppointmentStatus
from ...models.provider import ProviderCategory
from ...schemas.appointment import (
    AppointmentCreate, AppointmentDetailResponse, AppointmentFilter, AppointmentResponse,
    AppointmentStats, AppointmentUpdate, CancelRequest, TransitionRequest
)
from ...services.scheduling_service import SchedulingService
from ...services.timeslots import TimeRange

router = APIRouter(prefix="/appointments", tags=["Appointments"])

# Endpoints are plain functions: lock waits block, so they run in the threadpool

@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Request an appointment; 409 with the conflict reason when it cannot be booked."""
    appointment = service.request_appointment(
        patient_id=appointment_data.patient_id,
        provider_id=appointment_data.provider_id,
        requested=TimeRange(appointment_data.start, appointment_data.end),
        reason=appointment_data.reason,
        category=appointment_data.category,
        urgency=appointment_data.urgency,
        notes=appointment_data.notes,
    )
    return AppointmentResponse.model_validate(appointment)

@router.get("", response_model=List[AppointmentResponse])
def list_appointments(
    provider_id: Optional[int] = None,
    patient_id: Optional[str] = None,
    category: Optional[ProviderCategory] = None,
    status: Optional[AppointmentStatus] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List appointments in ascending start order."""
    filter = AppointmentFilter(
        provider_id=provider_id,
        patient_id=patient_id,
        category=category,
        status=status,
        start=start,
        end=end,
    )
    return [AppointmentResponse.model_validate(a) for a in service.list_appointments(filter)]

@router.get("/stats", response_model=AppointmentStats)
def appointment_stats(
    provider_id: Optional[int] = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    counts = service.appointment_stats(provider_id)
    return AppointmentStats(total=sum(counts.values()), by_status=counts)

@router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
def get_appointment(
    appointment_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return AppointmentDetailResponse.model_validate(service.get_appointment(appointment_id))

@router.patch("/{appointment_id}", response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    patch: AppointmentUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Reschedule or edit details; the stored record is unchanged on failure."""
    return AppointmentResponse.model_validate(service.update_appointment(appointment_id, patch))

@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    cancel_data: CancelRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.cancel_appointment(
        appointment_id,
        actor=cancel_data.actor,
        override=cancel_data.override,
        reason=cancel_data.reason,
    )
    return AppointmentResponse.model_validate(appointment)

@router.delete("/{appointment_id}")
def delete_appointment(
    appointment_id: int,
    actor: str = "system",
    override: bool = False,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Cancel; appointment records are never physically deleted."""
    service.cancel_appointment(appointment_id, actor=actor, override=override)
    return {"message": "Appointment cancelled successfully", "id": appointment_id}

@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    transition_data: TransitionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.confirm_appointment(
        appointment_id, actor=transition_data.actor, reason=transition_data.reason
    )
    return AppointmentResponse.model_validate(appointment)

@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    transition_data: TransitionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.complete_appointment(
        appointment_id, actor=transition_data.actor, reason=transition_data.reason
    )
    return AppointmentResponse.model_validate(appointment)

@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
def mark_no_show(
    appointment_id: int,
    transition_data: TransitionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = service.mark_no_show(
        appointment_id, actor=transition_data.actor, reason=transition_data.reason
    )
    return AppointmentResponse.model_validate(appointment)
