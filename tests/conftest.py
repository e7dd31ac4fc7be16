"""Shared test fixtures."""
import os

# Settings are read at import time; keep tests off PostgreSQL and the scheduler
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["HOLD_EXPIRY_ENABLED"] = "false"

from datetime import datetime, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from courtbook.core.database import Base  # noqa: E402
from courtbook.core.security import Principal, Role  # noqa: E402
from courtbook.services.booking import BookingRequest, BookingService  # noqa: E402
from courtbook.services.cancellation import CancellationService  # noqa: E402
from courtbook.services.maintenance import MaintenanceService  # noqa: E402
from tests.fakes import (  # noqa: E402
    NOW,
    FixedClock,
    InMemoryBookingRepository,
    InMemoryStore,
    RecordingNotifier,
    StubPaymentGateway,
)


def hours_from_now(hours: float) -> datetime:
    return NOW + timedelta(hours=hours)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def repo(store):
    return InMemoryBookingRepository(store)


@pytest.fixture
def catalog(store):
    """One facility with two courts, a coach and two kinds of equipment."""
    facility = store.add_facility()
    return SimpleNamespace(
        facility=facility,
        court=store.add_court(facility, name="Court 1", base_price="50.00"),
        other_court=store.add_court(facility, name="Court 2", base_price="50.00"),
        coach=store.add_coach(facility, price="30.00"),
        rackets=store.add_equipment(facility, name="Racket", total_stock=10, price_per_unit="5.00"),
        balls=store.add_equipment(facility, name="Ball tube", total_stock=4, price_per_unit="2.50"),
    )


@pytest.fixture
def gateway():
    return StubPaymentGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def booking_service(repo, gateway, notifier, clock):
    return BookingService(repo, gateway=gateway, notifier=notifier, clock=clock)


@pytest.fixture
def cancellation_service(repo, notifier, clock):
    return CancellationService(repo, notifier=notifier, clock=clock)


@pytest.fixture
def maintenance_service(repo, clock):
    return MaintenanceService(repo, clock=clock)


@pytest.fixture
def user():
    return Principal(user_id=1)


@pytest.fixture
def other_user():
    return Principal(user_id=2)


@pytest.fixture
def admin():
    return Principal(user_id=99, role=Role.ADMIN)


@pytest.fixture
def make_request(catalog):
    """Build a booking request on the main court, starting ``hours`` from now."""

    def _make(hours=26, duration=1, **overrides):
        start = hours_from_now(hours)
        values = dict(
            court_id=catalog.court.id,
            start_time=start,
            end_time=start + timedelta(hours=duration),
            payment_method="cash",
        )
        values.update(overrides)
        return BookingRequest(**values)

    return _make


@pytest.fixture
async def session_factory():
    """Sessions on a fresh in-memory SQLite database shared through one connection."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
