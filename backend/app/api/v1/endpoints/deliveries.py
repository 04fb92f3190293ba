"""
Delivery API Endpoints.

Admins create deliveries and assign drivers; the assigned driver starts,
tracks and completes the delivery.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Path, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_user
from backend.app.domain.lifecycle.delivery_assignment import DeliveryAssignmentService
from backend.app.domain.lifecycle.tracking_log import TrackingLog
from backend.app.schemas.delivery import (
    DeliveryCreate, DriverAssignment, DeliveryComplete, LocationUpdate,
    DeliveryResponse, DeliveryDetailResponse, DeliveryListResponse, LocationUpdateResponse
)
from backend.app.schemas.tracking import LocationPingResponse, LocationTrailResponse
from backend.app.services.tracking_views import build_delivery_detail

router = APIRouter(prefix="/deliveries", tags=["Deliveries"])


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
async def create_delivery(
    delivery_data: DeliveryCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create the delivery for a parcel (Admin only).

    Returns 409 if the parcel already has one. Supplying driver_id assigns
    the driver immediately and moves the parcel to IN_TRANSIT.
    """
    delivery = await DeliveryAssignmentService.create_delivery(
        db, current_user, delivery_data.parcel_id, delivery_data.driver_id
    )
    return DeliveryResponse.model_validate(delivery)


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List deliveries, newest first.

    Drivers see only deliveries assigned to them.
    """
    deliveries = await DeliveryAssignmentService.list_deliveries(db, current_user)
    return DeliveryListResponse(
        deliveries=[DeliveryResponse.model_validate(d) for d in deliveries],
        count=len(deliveries)
    )


@router.get("/{delivery_id}", response_model=DeliveryDetailResponse)
async def get_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a delivery with its parcel, driver and 50 newest pings."""
    delivery = await DeliveryAssignmentService.get_delivery(db, current_user, delivery_id)
    return await build_delivery_detail(db, delivery)


@router.get("/{delivery_id}/locations", response_model=LocationTrailResponse)
async def get_delivery_locations(
    delivery_id: int = Path(..., description="Delivery ID"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Number of newest pings"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Newest location pings of a delivery, newest first."""
    delivery = await DeliveryAssignmentService.get_delivery(db, current_user, delivery_id)
    pings = await TrackingLog.recent_locations(db, delivery.id, limit=limit)
    return LocationTrailResponse(
        delivery_id=delivery.id,
        locations=[LocationPingResponse.model_validate(p) for p in pings],
        count=len(pings)
    )


@router.patch("/{delivery_id}/assign", response_model=DeliveryResponse)
async def assign_driver(
    delivery_id: int = Path(..., description="Delivery ID"),
    assignment: DriverAssignment = ...,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a driver to a delivery (Admin only).

    Validates:
    - Delivery exists
    - Target user is an active driver
    - Delivery has not started
    """
    delivery = await DeliveryAssignmentService.assign_driver(
        db, current_user, delivery_id, assignment.driver_id
    )
    return DeliveryResponse.model_validate(delivery)


@router.patch("/{delivery_id}/start", response_model=DeliveryResponse)
async def start_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Start a delivery (assigned Driver only)."""
    delivery = await DeliveryAssignmentService.start_delivery(db, current_user, delivery_id)
    return DeliveryResponse.model_validate(delivery)


@router.patch("/{delivery_id}/complete", response_model=DeliveryResponse)
async def complete_delivery(
    delivery_id: int = Path(..., description="Delivery ID"),
    completion: Optional[DeliveryComplete] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Complete a delivery (assigned Driver only).

    Accepts optional notes, proof of delivery and signature.
    """
    completion = completion or DeliveryComplete()
    delivery = await DeliveryAssignmentService.complete_delivery(
        db,
        current_user,
        delivery_id,
        notes=completion.notes,
        proof_of_delivery=completion.proof_of_delivery,
        signature=completion.signature,
    )
    return DeliveryResponse.model_validate(delivery)


@router.patch("/{delivery_id}/location", response_model=LocationUpdateResponse)
async def update_location(
    delivery_id: int = Path(..., description="Delivery ID"),
    location: LocationUpdate = Body(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Record the driver's current position (assigned Driver only).

    Appends to the location trail; does not change status.
    """
    ping = await DeliveryAssignmentService.update_location(
        db,
        current_user,
        delivery_id,
        latitude=location.latitude,
        longitude=location.longitude,
        accuracy=location.accuracy,
    )
    return LocationUpdateResponse(
        delivery_id=delivery_id,
        location_id=ping.id,
        current_latitude=ping.latitude,
        current_longitude=ping.longitude,
        recorded=True
    )
