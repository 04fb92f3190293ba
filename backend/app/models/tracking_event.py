"""
Tracking Event database model.

Immutable audit record of a parcel status change.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, event
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.parcel_enums import ParcelStatus


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only record."""


class TrackingEvent(Base):
    """
    Tracking Event model.

    Append-only: rows are never updated or deleted through the ORM.
    They disappear only through the database cascade when their parcel is
    deleted.
    """
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(
        Integer,
        ForeignKey('parcels.id', ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(Enum(ParcelStatus), nullable=False)
    description = Column(String(500), nullable=False)

    # Optional location
    location = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<TrackingEvent(id={self.id}, parcel_id={self.parcel_id}, status='{self.status.value}')>"


@event.listens_for(TrackingEvent, "before_update")
def _reject_tracking_event_update(mapper, connection, target):
    raise ImmutableRecordError(f"TrackingEvent {target.id} is append-only")


@event.listens_for(TrackingEvent, "before_delete")
def _reject_tracking_event_delete(mapper, connection, target):
    raise ImmutableRecordError(f"TrackingEvent {target.id} is append-only")
