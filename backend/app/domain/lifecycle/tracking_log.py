"""
Tracking Log & Location Trail.

Append-only recording of parcel tracking events and delivery location
pings, plus ordered queries over both. This module performs no
authorization; callers have already been authorized by the lifecycle
managers.

No update or delete entry point exists. Appends are staged
on the caller's session so they commit together with the entity change
they accompany.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.models.delivery import Delivery
from backend.app.models.location_ping import LocationPing
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.models.tracking_event import TrackingEvent


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackingLog:
    """Write-only event log and location trail."""

    @staticmethod
    def append_event(
        db: AsyncSession,
        parcel_id: int,
        status: ParcelStatus,
        description: str,
        location: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> TrackingEvent:
        """
        Stage a tracking event with a server-assigned timestamp.

        Args:
            db: Database session (committed by the caller)
            parcel_id: Parcel the event belongs to
            status: Parcel status at the time of the event
            description: Free-text description
            location: Optional human-readable location
            latitude: Optional latitude
            longitude: Optional longitude
            timestamp: Server time for the event, defaults to now

        Returns:
            Pending TrackingEvent
        """
        tracking_event = TrackingEvent(
            parcel_id=parcel_id,
            status=status,
            description=description,
            location=location,
            latitude=latitude,
            longitude=longitude,
            timestamp=timestamp or utcnow(),
        )
        db.add(tracking_event)
        return tracking_event

    @staticmethod
    async def events_for_parcel(db: AsyncSession, parcel_id: int) -> List[TrackingEvent]:
        """All events for a parcel, newest first."""
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.parcel_id == parcel_id)
            .order_by(desc(TrackingEvent.timestamp), desc(TrackingEvent.id))
        )
        return list(result.scalars().all())

    @staticmethod
    async def latest_event(db: AsyncSession, parcel_id: int) -> Optional[TrackingEvent]:
        result = await db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.parcel_id == parcel_id)
            .order_by(desc(TrackingEvent.id))
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def append_location(
        db: AsyncSession,
        delivery: Delivery,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
    ) -> LocationPing:
        """
        Stage a location ping and mirror it on the delivery.

        The delivery's current coordinates always equal the newest ping.
        """
        ping = LocationPing(
            delivery_id=delivery.id,
            latitude=latitude,
            longitude=longitude,
            accuracy=accuracy,
            timestamp=utcnow(),
        )
        db.add(ping)

        delivery.current_latitude = latitude
        delivery.current_longitude = longitude
        return ping

    @staticmethod
    async def recent_locations(
        db: AsyncSession,
        delivery_id: int,
        limit: Optional[int] = None,
    ) -> List[LocationPing]:
        """The newest ``limit`` pings for a delivery, newest first."""
        if limit is None:
            limit = settings.delivery_location_window
        result = await db.execute(
            select(LocationPing)
            .where(LocationPing.delivery_id == delivery_id)
            .order_by(desc(LocationPing.timestamp), desc(LocationPing.id))
            .limit(limit)
        )
        return list(result.scalars().all())
