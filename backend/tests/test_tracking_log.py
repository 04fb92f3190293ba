"""
Tests for the append-only tracking log, location trail and tracking numbers.
"""

import pytest
from sqlalchemy import select, func

from backend.app.core.exceptions import AppException
from backend.app.domain.lifecycle.delivery_assignment import DeliveryAssignmentService
from backend.app.domain.lifecycle.parcel_lifecycle import ParcelLifecycleService
from backend.app.domain.lifecycle.tracking_log import TrackingLog
from backend.app.domain.lifecycle.tracking_number import (
    assign_tracking_number,
    generate_tracking_number,
    TRACKING_ALPHABET,
)
from backend.app.models.location_ping import LocationPing
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.models.tracking_event import TrackingEvent, ImmutableRecordError
from backend.app.schemas.parcel import ParcelStatusUpdate


async def count_events(db, parcel_id):
    result = await db.execute(
        select(func.count(TrackingEvent.id)).where(TrackingEvent.parcel_id == parcel_id)
    )
    return result.scalar()


@pytest.mark.asyncio
async def test_tracking_events_cannot_be_updated(db_session, pending_parcel):
    event = await TrackingLog.latest_event(db_session, pending_parcel.id)
    event.description = "rewritten history"

    with pytest.raises(ImmutableRecordError):
        await db_session.flush()
    await db_session.rollback()

    event = await TrackingLog.latest_event(db_session, pending_parcel.id)
    assert event.description == "Parcel created and awaiting pickup"


@pytest.mark.asyncio
async def test_tracking_events_cannot_be_deleted(db_session, pending_parcel):
    event = await TrackingLog.latest_event(db_session, pending_parcel.id)
    await db_session.delete(event)

    with pytest.raises(ImmutableRecordError):
        await db_session.flush()
    await db_session.rollback()

    assert await count_events(db_session, pending_parcel.id) == 1


@pytest.mark.asyncio
async def test_location_pings_cannot_be_updated(db_session, users, identity_for, pending_parcel):
    delivery = await DeliveryAssignmentService.create_delivery(
        db_session, identity_for(users["admin"]), pending_parcel.id, users["driver"].id
    )
    ping = await DeliveryAssignmentService.update_location(
        db_session, identity_for(users["driver"]), delivery.id, 10.0, 20.0
    )
    ping.latitude = 11.0

    with pytest.raises(ImmutableRecordError):
        await db_session.flush()
    await db_session.rollback()


@pytest.mark.asyncio
async def test_deleting_parcel_removes_its_events(db_session, users, identity_for, pending_parcel):
    parcel_id = pending_parcel.id
    assert await count_events(db_session, parcel_id) == 1

    await ParcelLifecycleService.delete_parcel(db_session, identity_for(users["sender"]), parcel_id)

    assert await count_events(db_session, parcel_id) == 0
    assert await TrackingLog.latest_event(db_session, parcel_id) is None


@pytest.mark.asyncio
async def test_events_newest_first(db_session, users, identity_for, pending_parcel):
    admin = identity_for(users["admin"])
    for status in (ParcelStatus.PICKED_UP, ParcelStatus.IN_TRANSIT):
        await ParcelLifecycleService.update_status(
            db_session, admin, pending_parcel.id,
            ParcelStatusUpdate(status=status, description=status.value.lower())
        )

    events = await TrackingLog.events_for_parcel(db_session, pending_parcel.id)
    assert [e.status for e in events] == [
        ParcelStatus.IN_TRANSIT, ParcelStatus.PICKED_UP, ParcelStatus.PENDING
    ]
    latest = await TrackingLog.latest_event(db_session, pending_parcel.id)
    assert latest.id == events[0].id
    assert pending_parcel.status == latest.status


@pytest.mark.asyncio
async def test_recent_locations_window(db_session, users, identity_for, pending_parcel):
    delivery = await DeliveryAssignmentService.create_delivery(
        db_session, identity_for(users["admin"]), pending_parcel.id, users["driver"].id
    )
    driver = identity_for(users["driver"])
    for i in range(1, 61):
        await DeliveryAssignmentService.update_location(db_session, driver, delivery.id, float(i), float(-i))

    pings = await TrackingLog.recent_locations(db_session, delivery.id)
    assert len(pings) == 50
    assert [p.latitude for p in pings[:3]] == [60.0, 59.0, 58.0]
    assert pings[-1].latitude == 11.0

    assert delivery.current_latitude == 60.0
    assert delivery.current_longitude == -60.0

    result = await db_session.execute(
        select(func.count(LocationPing.id)).where(LocationPing.delivery_id == delivery.id)
    )
    assert result.scalar() == 60


@pytest.mark.asyncio
async def test_generated_tracking_number_format():
    number = generate_tracking_number()
    assert len(number) == 12
    assert number.startswith("TRK")
    assert all(ch in TRACKING_ALPHABET for ch in number[3:])

    assert len(generate_tracking_number(length=16)) == 16


@pytest.mark.asyncio
async def test_tracking_number_collision_is_retried(db_session, pending_parcel):
    candidates = iter([pending_parcel.tracking_number, "TRKFRESH0001"])

    number = await assign_tracking_number(db_session, generator=lambda: next(candidates))

    assert number == "TRKFRESH0001"


@pytest.mark.asyncio
async def test_tracking_number_attempts_exhausted(db_session, pending_parcel):
    with pytest.raises(AppException) as exc_info:
        await assign_tracking_number(
            db_session, generator=lambda: pending_parcel.tracking_number, max_attempts=3
        )

    assert exc_info.value.status_code == 503
    assert exc_info.value.details == {"attempts": 3}


@pytest.mark.asyncio
async def test_recent_locations_honours_explicit_limit(db_session, users, identity_for, pending_parcel):
    delivery = await DeliveryAssignmentService.create_delivery(
        db_session, identity_for(users["admin"]), pending_parcel.id, users["driver"].id
    )
    driver = identity_for(users["driver"])
    for i in range(3):
        await DeliveryAssignmentService.update_location(db_session, driver, delivery.id, float(i), 0.0)

    assert await TrackingLog.recent_locations(db_session, delivery.id, limit=0) == []
    assert len(await TrackingLog.recent_locations(db_session, delivery.id, limit=2)) == 2
    assert len(await TrackingLog.recent_locations(db_session, delivery.id)) == 3
