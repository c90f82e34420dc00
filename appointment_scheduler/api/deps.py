from fastapi import Depends
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Callable

from ..core.database import get_db
from ..core.locks import provider_locks
from ..services.availability_store import AvailabilityStore
from ..services.events import event_publisher
from ..services.provider_registry import ProviderRegistry
from ..services.scheduling_service import SchedulingService
from ..services.timeslots import utcnow

def get_clock() -> Callable[[], datetime]:
    """Canonical clock; overridden in tests."""
    return utcnow

def get_provider_locks():
    """Process-wide provider locks."""
    return provider_locks

def get_scheduling_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    locks = Depends(get_provider_locks),
) -> SchedulingService:
    return SchedulingService(db, locks=locks, clock=clock, publisher=event_publisher)

def get_availability_store(db: Session = Depends(get_db)) -> AvailabilityStore:
    return AvailabilityStore(db)

def get_provider_registry(db: Session = Depends(get_db)) -> ProviderRegistry:
    return ProviderRegistry(db)
