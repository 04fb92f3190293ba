"""
Location Ping database model.

Stores the GPS breadcrumb trail of a delivery.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, event
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.tracking_event import ImmutableRecordError


class LocationPing(Base):
    """
    Location Ping model.

    Records a driver position sample for a delivery. Append-only; the
    owning delivery mirrors the newest ping in its current coordinates.
    """
    __tablename__ = "location_pings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    delivery_id = Column(Integer, ForeignKey('deliveries.id'), nullable=False, index=True)

    # GPS coordinates
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # GPS accuracy in meters

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<LocationPing(delivery_id={self.delivery_id}, lat={self.latitude}, lng={self.longitude})>"


@event.listens_for(LocationPing, "before_update")
def _reject_location_ping_update(mapper, connection, target):
    raise ImmutableRecordError(f"LocationPing {target.id} is append-only")


@event.listens_for(LocationPing, "before_delete")
def _reject_location_ping_delete(mapper, connection, target):
    raise ImmutableRecordError(f"LocationPing {target.id} is append-only")
