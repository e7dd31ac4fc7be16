"""Concurrent booking tests against the shared in-memory store."""
import asyncio
import random
from datetime import timedelta

from courtbook.core.errors import ReasonCode, UnavailableError
from courtbook.core.security import Principal
from courtbook.models.reservation import ACTIVE_STATUSES
from courtbook.services.booking import BookingRequest, BookingService
from courtbook.services.cancellation import CancellationService
from tests.conftest import hours_from_now
from tests.fakes import InMemoryBookingRepository, RecordingNotifier, StubPaymentGateway


def booking_service_for(store, clock):
    """One service per request, each with its own repository, as the HTTP layer does."""
    return BookingService(
        InMemoryBookingRepository(store),
        gateway=StubPaymentGateway(),
        notifier=RecordingNotifier(),
        clock=clock,
    )


def split(results):
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures


def assert_stock_consistent(store):
    for item in store.equipment.values():
        held = sum(
            line.quantity
            for line in store.reservation_equipment.values()
            if line.equipment_id == item.id and store.reservations[line.reservation_id].status in ACTIVE_STATUSES
        )
        assert 0 <= item.available_stock <= item.total_stock
        assert item.available_stock == item.total_stock - held


async def test_only_one_overlapping_booking_wins(store, catalog, clock):
    attempts = 10

    async def attempt(i):
        start = hours_from_now(26) + timedelta(minutes=5 * i)
        request = BookingRequest(catalog.court.id, start, start + timedelta(hours=1), payment_method="cash")
        return await booking_service_for(store, clock).create_reservation(request, Principal(user_id=100 + i))

    results = await asyncio.gather(*(attempt(i) for i in range(attempts)), return_exceptions=True)
    successes, failures = split(results)

    assert len(successes) == 1
    assert len(failures) == attempts - 1
    assert all(isinstance(f, UnavailableError) and f.code == ReasonCode.COURT_CONFLICT for f in failures)

    active = [r for r in store.reservations.values() if r.status in ACTIVE_STATUSES]
    assert len(active) == 1
    assert len(store.profiles) == 1


async def test_coach_cannot_be_double_booked_across_courts(store, catalog, clock):
    start = hours_from_now(26)

    async def attempt(court, user_id):
        request = BookingRequest(
            court.id, start, start + timedelta(hours=1), payment_method="cash", coach_id=catalog.coach.id
        )
        return await booking_service_for(store, clock).create_reservation(request, Principal(user_id=user_id))

    results = await asyncio.gather(
        attempt(catalog.court, 1), attempt(catalog.other_court, 2), return_exceptions=True
    )
    successes, failures = split(results)

    assert len(successes) == 1
    assert [f.code for f in failures] == [ReasonCode.COACH_CONFLICT]


async def test_different_courts_book_in_parallel(store, catalog, clock):
    start = hours_from_now(26)

    async def attempt(court, user_id):
        request = BookingRequest(court.id, start, start + timedelta(hours=1), payment_method="cash")
        return await booking_service_for(store, clock).create_reservation(request, Principal(user_id=user_id))

    results = await asyncio.gather(attempt(catalog.court, 1), attempt(catalog.other_court, 2))

    assert {r.reservation.court_id for r in results} == {catalog.court.id, catalog.other_court.id}


async def test_stock_stays_within_bounds_under_interleaving(store, catalog, clock):
    """Concurrent bookings and cancellations never oversell or overfill stock."""
    rng = random.Random(7)
    courts = [catalog.court, catalog.other_court] + [
        store.add_court(catalog.facility, name=f"Court {n}") for n in range(3, 7)
    ]

    async def book(i):
        court = rng.choice(courts)
        start = hours_from_now(26 + rng.randint(0, 3))
        request = BookingRequest(
            court.id,
            start,
            start + timedelta(hours=1),
            payment_method="cash",
            equipment=[(catalog.rackets.id, rng.randint(1, 4)), (catalog.balls.id, rng.randint(0, 2) or 1)],
        )
        return await booking_service_for(store, clock).create_reservation(request, Principal(user_id=i))

    first_wave, _ = split(await asyncio.gather(*(book(i) for i in range(20)), return_exceptions=True))
    assert first_wave
    assert_stock_consistent(store)

    async def cancel(result):
        service = CancellationService(InMemoryBookingRepository(store), notifier=RecordingNotifier(), clock=clock)
        owner = Principal(user_id=result.reservation.user_id)
        return await service.cancel(result.reservation.id, owner)

    to_cancel = first_wave[::2]
    await asyncio.gather(
        *(cancel(result) for result in to_cancel),
        *(book(100 + i) for i in range(20)),
        return_exceptions=True,
    )
    assert_stock_consistent(store)
    assert all(result.reservation.status == "cancelled" for result in to_cancel)
