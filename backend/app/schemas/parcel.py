"""
Parcel Pydantic schemas.

Defines request and response models for parcel management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from backend.app.models.parcel_enums import ParcelStatus, ParcelPriority
from backend.app.schemas.tracking import TrackingEventResponse, LocationPingResponse
from backend.app.models.delivery_enums import DeliveryPhase


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    description: str = Field(..., min_length=1, max_length=500, description="Parcel description")
    weight: float = Field(..., gt=0, description="Weight in kilograms")
    dimensions: Optional[str] = Field(None, max_length=100, description="Free-form dimensions, e.g. 30x20x10 cm")
    value: Optional[float] = Field(None, ge=0, description="Declared value")
    priority: ParcelPriority = Field(default=ParcelPriority.STANDARD)
    receiver_id: int = Field(..., description="Receiving user")
    pickup_address: str = Field(..., min_length=1, max_length=500)
    delivery_address: str = Field(..., min_length=1, max_length=500)
    estimated_delivery: Optional[datetime] = None
    special_instructions: Optional[str] = Field(None, max_length=2000)


class ParcelStatusUpdate(BaseModel):
    """Schema for a status change on a parcel."""
    status: ParcelStatus
    description: str = Field(..., min_length=1, max_length=500)
    location: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    tracking_number: str
    sender_id: int
    receiver_id: int
    description: str
    weight: float
    dimensions: Optional[str]
    value: Optional[float]
    priority: ParcelPriority
    special_instructions: Optional[str]
    pickup_address: str
    delivery_address: str
    status: ParcelStatus
    created_at: datetime
    updated_at: datetime
    pickup_date: Optional[datetime]
    delivery_date: Optional[datetime]
    estimated_delivery: Optional[datetime]

    class Config:
        from_attributes = True


class ParcelDeliverySummary(BaseModel):
    """Delivery embedded in a parcel view, with its newest pings."""
    id: int
    driver_id: Optional[int]
    phase: DeliveryPhase
    assigned_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    current_latitude: Optional[float]
    current_longitude: Optional[float]
    locations: List[LocationPingResponse] = []

    class Config:
        from_attributes = True


class ParcelDetailResponse(ParcelResponse):
    """Parcel with tracking history (newest first) and delivery."""
    tracking_events: List[TrackingEventResponse] = []
    delivery: Optional[ParcelDeliverySummary] = None


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    parcels: List[ParcelResponse]
    total: int
    page: int
    page_size: int
