"""
Read-model assembly for parcel and delivery detail views.

Callers authorize access first; these helpers only gather the embedded
tracking history and location trail.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.domain.lifecycle.parcel_lifecycle import find_delivery_for_parcel, load_parcel
from backend.app.domain.lifecycle.tracking_log import TrackingLog
from backend.app.models.delivery import Delivery
from backend.app.models.parcel import Parcel
from backend.app.models.user import User
from backend.app.schemas.delivery import DeliveryDetailResponse, DeliveryParcelView, DriverSummary
from backend.app.schemas.parcel import ParcelDetailResponse, ParcelDeliverySummary, ParcelResponse
from backend.app.schemas.tracking import TrackingEventResponse, LocationPingResponse


async def build_parcel_detail(db: AsyncSession, parcel: Parcel) -> ParcelDetailResponse:
    """
    Parcel with events newest first and its delivery carrying the newest
    ``parcel_location_window`` pings.
    """
    events = await TrackingLog.events_for_parcel(db, parcel.id)

    delivery_summary = None
    delivery = await find_delivery_for_parcel(db, parcel.id)
    if delivery:
        pings = await TrackingLog.recent_locations(
            db, delivery.id, limit=settings.parcel_location_window
        )
        delivery_summary = ParcelDeliverySummary(
            id=delivery.id,
            driver_id=delivery.driver_id,
            phase=delivery.phase,
            assigned_at=delivery.assigned_at,
            started_at=delivery.started_at,
            completed_at=delivery.completed_at,
            current_latitude=delivery.current_latitude,
            current_longitude=delivery.current_longitude,
            locations=[LocationPingResponse.model_validate(p) for p in pings],
        )

    base = ParcelResponse.model_validate(parcel).model_dump()
    return ParcelDetailResponse(
        **base,
        tracking_events=[TrackingEventResponse.model_validate(e) for e in events],
        delivery=delivery_summary,
    )


async def build_delivery_detail(db: AsyncSession, delivery: Delivery) -> DeliveryDetailResponse:
    """
    Delivery with its parcel (events newest first), driver, and the newest
    ``delivery_location_window`` pings.
    """
    parcel = await load_parcel(db, delivery.parcel_id)
    events = await TrackingLog.events_for_parcel(db, parcel.id)
    pings = await TrackingLog.recent_locations(
        db, delivery.id, limit=settings.delivery_location_window
    )

    driver = None
    if delivery.driver_id is not None:
        driver_user = await db.get(User, delivery.driver_id)
        if driver_user:
            driver = DriverSummary.model_validate(driver_user)

    parcel_view = DeliveryParcelView(
        **ParcelResponse.model_validate(parcel).model_dump(),
        tracking_events=[TrackingEventResponse.model_validate(e) for e in events],
    )

    return DeliveryDetailResponse(
        id=delivery.id,
        parcel_id=delivery.parcel_id,
        driver_id=delivery.driver_id,
        phase=delivery.phase,
        assigned_at=delivery.assigned_at,
        started_at=delivery.started_at,
        completed_at=delivery.completed_at,
        current_latitude=delivery.current_latitude,
        current_longitude=delivery.current_longitude,
        notes=delivery.notes,
        proof_of_delivery=delivery.proof_of_delivery,
        signature=delivery.signature,
        created_at=delivery.created_at,
        updated_at=delivery.updated_at,
        parcel=parcel_view,
        driver=driver,
        locations=[LocationPingResponse.model_validate(p) for p in pings],
    )
