import os
import tempfile
from datetime import date, datetime, time, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set testing environment before the application reads its settings
os.environ["TESTING"] = "1"
os.environ.setdefault(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'appointment_scheduler_test.db')}",
)

from appointment_scheduler.core.database import init_db
from appointment_scheduler.core.locks import LocalProviderLocks
from appointment_scheduler.models.provider import ProviderCategory
from appointment_scheduler.schemas.provider import ProviderCreate
from appointment_scheduler.services.availability_store import AvailabilityStore
from appointment_scheduler.services.events import EventPublisher
from appointment_scheduler.services.provider_registry import ProviderRegistry
from appointment_scheduler.services.scheduling_service import SchedulingService
from appointment_scheduler.services.timeslots import TimeRange, WeeklyWindow

MONDAY = date(2030, 1, 7)
TUESDAY = MONDAY + timedelta(days=1)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


def rng(start: str, end: str, day: date = MONDAY) -> TimeRange:
    """TimeRange from "HH:MM" strings on ``day``."""
    return TimeRange(
        datetime.combine(day, time.fromisoformat(start)),
        datetime.combine(day, time.fromisoformat(end)),
    )


class FixedClock:
    """Canonical clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'scheduling.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # Sunday morning, the day before the Monday used by most tests
    return FixedClock(datetime(2030, 1, 6, 8, 0))


@pytest.fixture
def locks():
    return LocalProviderLocks(timeout=2.0)


@pytest.fixture
def publisher():
    return EventPublisher()


@pytest.fixture
def make_service(locks, clock, publisher):
    def factory(session, **kwargs):
        kwargs.setdefault("immediate_confirmation", False)
        return SchedulingService(
            session, locks=locks, clock=clock, publisher=publisher, **kwargs
        )
    return factory


@pytest.fixture
def service(db, make_service):
    return make_service(db)


@pytest.fixture
def store(db):
    return AvailabilityStore(db)


@pytest.fixture
def make_provider(db):
    """Provider with weekly availability Monday 09:00-12:00 unless told otherwise."""
    def factory(
        name="Dr. Naidoo",
        category=ProviderCategory.GENERAL_PRACTITIONER,
        appointment_minutes=30,
        windows=None,
    ):
        provider = ProviderRegistry(db).create_provider(
            ProviderCreate(name=name, category=category, appointment_minutes=appointment_minutes)
        )
        if windows is None:
            windows = [WeeklyWindow(0, time(9, 0), time(12, 0))]
        AvailabilityStore(db).set_recurring_availability(provider.id, windows)
        return provider
    return factory


@pytest.fixture
def provider(make_provider):
    return make_provider()
