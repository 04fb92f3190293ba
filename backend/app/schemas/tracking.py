"""
Tracking log schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from backend.app.models.parcel_enums import ParcelStatus


class TrackingEventResponse(BaseModel):
    """Tracking event response."""
    id: int
    parcel_id: int
    status: ParcelStatus
    description: str
    location: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    timestamp: datetime

    class Config:
        from_attributes = True


class TrackingHistoryResponse(BaseModel):
    """Tracking history of a parcel, newest event first."""
    parcel_id: int
    tracking_number: str
    status: ParcelStatus
    events: List[TrackingEventResponse]


class LocationPingResponse(BaseModel):
    """GPS location response."""
    id: int
    delivery_id: int
    latitude: float
    longitude: float
    accuracy: Optional[float]
    timestamp: datetime

    class Config:
        from_attributes = True


class LocationTrailResponse(BaseModel):
    """Most recent pings of a delivery, newest first."""
    delivery_id: int
    locations: List[LocationPingResponse]
    count: int
