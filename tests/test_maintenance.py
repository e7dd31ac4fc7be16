"""Maintenance block and coach unavailability tests."""
from datetime import time, timedelta

import pytest

from courtbook.core.errors import InvalidRequestError, NotAuthorizedError, NotFoundError, ReasonCode, UnavailableError
from tests.conftest import hours_from_now


async def test_block_over_active_reservation_is_rejected(booking_service, maintenance_service, make_request, user,
                                                         admin, catalog, store):
    await booking_service.create_reservation(make_request(hours=26, duration=2), user)

    with pytest.raises(UnavailableError) as excinfo:
        await maintenance_service.create_block(
            catalog.court.id, hours_from_now(27), hours_from_now(28), "Net repair", admin
        )

    assert excinfo.value.code == ReasonCode.COURT_CONFLICT
    assert store.maintenance_blocks == {}


async def test_block_prevents_booking_until_removed(booking_service, maintenance_service, make_request, user, admin,
                                                    catalog):
    block = await maintenance_service.create_block(
        catalog.court.id, hours_from_now(24), hours_from_now(30), "Resurfacing", admin
    )
    assert block.created_by == admin.user_id

    with pytest.raises(UnavailableError) as excinfo:
        await booking_service.create_reservation(make_request(hours=26), user)
    assert excinfo.value.code == ReasonCode.MAINTENANCE_CONFLICT

    await maintenance_service.delete_block(block.id, admin)

    result = await booking_service.create_reservation(make_request(hours=26), user)
    assert result.reservation.status == "confirmed"


async def test_block_next_to_cancelled_reservation_is_allowed(booking_service, cancellation_service,
                                                              maintenance_service, make_request, user, admin,
                                                              catalog):
    created = await booking_service.create_reservation(make_request(hours=26), user)
    await cancellation_service.cancel(created.reservation.id, user)

    block = await maintenance_service.create_block(
        catalog.court.id, hours_from_now(26), hours_from_now(27), "Lighting", admin
    )
    assert block.id is not None


async def test_block_validation(maintenance_service, user, admin, catalog):
    with pytest.raises(NotAuthorizedError):
        await maintenance_service.create_block(catalog.court.id, hours_from_now(1), hours_from_now(2), "x", user)
    with pytest.raises(InvalidRequestError):
        await maintenance_service.create_block(catalog.court.id, hours_from_now(2), hours_from_now(2), "x", admin)
    with pytest.raises(NotFoundError):
        await maintenance_service.create_block(404, hours_from_now(1), hours_from_now(2), "x", admin)
    with pytest.raises(NotFoundError):
        await maintenance_service.delete_block(404, admin)


async def test_coach_unavailability_blocks_bookings(booking_service, maintenance_service, make_request, user, admin,
                                                    catalog):
    start = hours_from_now(26)
    await maintenance_service.add_coach_unavailability(
        catalog.coach.id, start.date(), time(9, 0), time(12, 0), "Tournament", admin
    )

    with pytest.raises(UnavailableError) as excinfo:
        await booking_service.create_reservation(make_request(hours=26, coach_id=catalog.coach.id), user)
    assert excinfo.value.code == ReasonCode.COACH_UNAVAILABLE

    # Without the coach the court is still bookable
    result = await booking_service.create_reservation(make_request(hours=26), user)
    assert result.reservation.coach_id is None


async def test_coach_unavailability_validation(maintenance_service, user, admin, catalog):
    day = (hours_from_now(26) + timedelta(days=1)).date()

    with pytest.raises(NotAuthorizedError):
        await maintenance_service.add_coach_unavailability(catalog.coach.id, day, None, None, None, user)
    with pytest.raises(InvalidRequestError):
        await maintenance_service.add_coach_unavailability(catalog.coach.id, day, time(9, 0), None, None, admin)
    with pytest.raises(InvalidRequestError):
        await maintenance_service.add_coach_unavailability(catalog.coach.id, day, time(12, 0), time(9, 0), None, admin)
    with pytest.raises(NotFoundError):
        await maintenance_service.add_coach_unavailability(404, day, None, None, None, admin)

    record = await maintenance_service.add_coach_unavailability(catalog.coach.id, day, None, None, "Leave", admin)
    assert record.start_time is None and record.end_time is None


async def test_list_blocks(maintenance_service, user, admin, catalog):
    first = await maintenance_service.create_block(
        catalog.court.id, hours_from_now(30), hours_from_now(32), "Lighting", admin
    )
    second = await maintenance_service.create_block(
        catalog.other_court.id, hours_from_now(2), hours_from_now(4), "Nets", admin
    )
    later = await maintenance_service.create_block(
        catalog.court.id, hours_from_now(50), hours_from_now(52), "Painting", admin
    )

    everything = await maintenance_service.list_blocks(admin)
    on_court = await maintenance_service.list_blocks(admin, court_id=catalog.court.id)
    windowed = await maintenance_service.list_blocks(admin, start=hours_from_now(31), end=hours_from_now(50))

    assert [block.id for block in everything] == [second.id, first.id, later.id]
    assert [block.id for block in on_court] == [first.id, later.id]
    assert [block.id for block in windowed] == [first.id]
    with pytest.raises(NotAuthorizedError):
        await maintenance_service.list_blocks(user)
    with pytest.raises(InvalidRequestError):
        await maintenance_service.list_blocks(admin, start=hours_from_now(5), end=hours_from_now(5))


async def test_list_coach_unavailability(maintenance_service, user, admin, catalog):
    day = hours_from_now(26).date()
    morning = await maintenance_service.add_coach_unavailability(
        catalog.coach.id, day, time(9, 0), time(12, 0), "Clinic", admin
    )
    week_later = await maintenance_service.add_coach_unavailability(
        catalog.coach.id, day + timedelta(days=7), None, None, "Leave", admin
    )

    everything = await maintenance_service.list_coach_unavailability(catalog.coach.id, admin)
    this_week = await maintenance_service.list_coach_unavailability(
        catalog.coach.id, admin, from_date=day, to_date=day + timedelta(days=6)
    )

    assert [record.id for record in everything] == [morning.id, week_later.id]
    assert [record.id for record in this_week] == [morning.id]
    with pytest.raises(NotAuthorizedError):
        await maintenance_service.list_coach_unavailability(catalog.coach.id, user)
    with pytest.raises(InvalidRequestError):
        await maintenance_service.list_coach_unavailability(
            catalog.coach.id, admin, from_date=day, to_date=day - timedelta(days=1)
        )
    with pytest.raises(NotFoundError):
        await maintenance_service.list_coach_unavailability(404, admin)
