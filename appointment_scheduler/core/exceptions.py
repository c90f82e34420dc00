from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import status


class SchedulingError(Exception):
    """Base class for every expected, recoverable scheduling outcome."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "SCHEDULING_ERROR"

    def __init__(self, detail: str = "Scheduling request failed", **details: Any):
        super().__init__(detail)
        self.detail = detail
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload = {}
        for key, value in self.details.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[key] = value
        return {"error": self.code, "message": self.detail, "details": payload}


# Validation errors
class ValidationError(SchedulingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class InvalidWindow(ValidationError):
    code = "INVALID_WINDOW"


class InvalidInterval(ValidationError):
    code = "INVALID_INTERVAL"


# Conflicts
class ConflictError(SchedulingError):
    """A requested range cannot be booked.

    Carries the conflicting interval (and appointment id for double-bookings)
    so the caller can suggest another slot.
    """

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    reason = "Conflict"

    def __init__(
        self,
        detail: str,
        conflicting_start: Optional[datetime] = None,
        conflicting_end: Optional[datetime] = None,
        conflicting_id: Optional[int] = None,
    ):
        super().__init__(
            detail,
            reason=self.reason,
            conflicting_start=conflicting_start,
            conflicting_end=conflicting_end,
            conflicting_id=conflicting_id,
        )
        self.conflicting_start = conflicting_start
        self.conflicting_end = conflicting_end
        self.conflicting_id = conflicting_id


class OutsideAvailability(ConflictError):
    code = "OUTSIDE_AVAILABILITY"
    reason = "OutsideAvailability"


class BlackoutOverlap(ConflictError):
    code = "BLACKOUT_OVERLAP"
    reason = "BlackoutOverlap"


class DoubleBooked(ConflictError):
    code = "DOUBLE_BOOKED"
    reason = "DoubleBooked"


class PatientDoubleBooked(ConflictError):
    code = "PATIENT_DOUBLE_BOOKED"
    reason = "PatientDoubleBooked"


# State machine errors
class IllegalTransition(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = "ILLEGAL_TRANSITION"

    def __init__(self, current: str, target: str, detail: Optional[str] = None):
        super().__init__(
            detail or f"Cannot move appointment from '{current}' to '{target}'",
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class TooLateToCancel(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOO_LATE_TO_CANCEL"


class NotFound(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


# Infrastructure errors, retryable
class SchedulingBusy(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SCHEDULING_BUSY"
    retry_after = 1


class StorageUnavailable(SchedulingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORAGE_UNAVAILABLE"
