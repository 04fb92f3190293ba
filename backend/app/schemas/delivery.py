"""
Delivery schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.delivery_enums import DeliveryPhase
from backend.app.schemas.parcel import ParcelResponse
from backend.app.schemas.tracking import TrackingEventResponse, LocationPingResponse


class DeliveryCreate(BaseModel):
    """Schema for creating a delivery, optionally assigned right away."""
    parcel_id: int
    driver_id: Optional[int] = None


class DriverAssignment(BaseModel):
    """Schema for assigning a driver to a delivery."""
    driver_id: int


class DeliveryComplete(BaseModel):
    """Completion artifacts supplied by the driver."""
    notes: Optional[str] = Field(None, max_length=2000)
    proof_of_delivery: Optional[str] = None
    signature: Optional[str] = None


class LocationUpdate(BaseModel):
    """Schema for recording a GPS location."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, gt=0)


class LocationUpdateResponse(BaseModel):
    """Response after recording a location."""
    delivery_id: int
    location_id: int
    current_latitude: float
    current_longitude: float
    recorded: bool


class DriverSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    phone: Optional[str]

    class Config:
        from_attributes = True


class DeliveryResponse(BaseModel):
    """Schema for delivery response."""
    id: int
    parcel_id: int
    driver_id: Optional[int]
    phase: DeliveryPhase
    assigned_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    current_latitude: Optional[float]
    current_longitude: Optional[float]
    notes: Optional[str]
    proof_of_delivery: Optional[str]
    signature: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeliveryParcelView(ParcelResponse):
    """Parcel embedded in a delivery view."""
    tracking_events: List[TrackingEventResponse] = []


class DeliveryDetailResponse(DeliveryResponse):
    """Delivery with its parcel, driver and newest location pings."""
    parcel: DeliveryParcelView
    driver: Optional[DriverSummary] = None
    locations: List[LocationPingResponse] = []


class DeliveryListResponse(BaseModel):
    deliveries: List[DeliveryResponse]
    count: int
