"""
Parcel API Endpoints.

Customers create and track their parcels; admins and drivers move them
through the lifecycle.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_user
from backend.app.domain.lifecycle.parcel_lifecycle import ParcelLifecycleService
from backend.app.domain.lifecycle.tracking_log import TrackingLog
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.schemas.parcel import (
    ParcelCreate, ParcelStatusUpdate, ParcelResponse, ParcelDetailResponse, ParcelListResponse
)
from backend.app.schemas.tracking import TrackingEventResponse, TrackingHistoryResponse
from backend.app.services.tracking_views import build_parcel_detail

router = APIRouter(prefix="/parcels", tags=["Parcels"])


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new parcel. The caller becomes the sender.

    Assigns a tracking number and records the PENDING tracking event.
    """
    parcel = await ParcelLifecycleService.create_parcel(db, current_user, parcel_data)
    return ParcelResponse.model_validate(parcel)


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    status_filter: Optional[ParcelStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List parcels, newest first.

    Customers only see parcels they send or receive.
    """
    parcels, total = await ParcelLifecycleService.list_parcels(
        db, current_user, status=status_filter, page=page, page_size=page_size
    )
    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/tracking/{tracking_number}", response_model=ParcelDetailResponse)
async def get_parcel_by_tracking_number(
    tracking_number: str = Path(..., min_length=1, description="Tracking number"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Look up a parcel by tracking number."""
    parcel = await ParcelLifecycleService.get_parcel_by_tracking_number(db, current_user, tracking_number)
    return await build_parcel_detail(db, parcel)


@router.get("/{parcel_id}", response_model=ParcelDetailResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get a parcel with its tracking history and delivery.

    Events are newest first; the delivery carries its 10 newest pings.
    """
    parcel = await ParcelLifecycleService.get_parcel(db, current_user, parcel_id)
    return await build_parcel_detail(db, parcel)


@router.get("/{parcel_id}/tracking", response_model=TrackingHistoryResponse)
async def get_parcel_tracking(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Tracking history of a parcel, newest event first."""
    parcel = await ParcelLifecycleService.get_parcel(db, current_user, parcel_id)
    events = await TrackingLog.events_for_parcel(db, parcel.id)
    return TrackingHistoryResponse(
        parcel_id=parcel.id,
        tracking_number=parcel.tracking_number,
        status=parcel.status,
        events=[TrackingEventResponse.model_validate(e) for e in events]
    )


@router.patch("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    parcel_id: int = Path(..., description="Parcel ID"),
    update: ParcelStatusUpdate = ...,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update parcel status (Admin or Driver).

    Appends a tracking event with the supplied description and location.
    """
    parcel = await ParcelLifecycleService.update_status(db, current_user, parcel_id, update)
    return ParcelResponse.model_validate(parcel)


@router.delete("/{parcel_id}")
async def delete_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a parcel (sender only, while PENDING and without delivery).
    """
    await ParcelLifecycleService.delete_parcel(db, current_user, parcel_id)
    return {
        "parcel_id": parcel_id,
        "deleted": True,
        "message": "Parcel deleted successfully"
    }
