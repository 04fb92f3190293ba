"""
Parcel Lifecycle Service (Domain Logic).

Owns parcel creation, status transitions, deletion and visibility.
Every mutation pairs the parcel write with its tracking event inside one
unit of work.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    BadRequestError,
    ConflictError,
    ResourceNotFoundError,
)
from backend.app.db.session import unit_of_work
from backend.app.domain.lifecycle import policies
from backend.app.domain.lifecycle.policies import Operation
from backend.app.domain.lifecycle.tracking_log import TrackingLog, utcnow
from backend.app.domain.lifecycle.tracking_number import assign_tracking_number
from backend.app.models.delivery import Delivery
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.models.user import User
from backend.app.schemas.parcel import ParcelCreate, ParcelStatusUpdate
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)

CREATED_DESCRIPTION = "Parcel created and awaiting pickup"


async def load_parcel(db: AsyncSession, parcel_id: int, for_update: bool = False) -> Parcel:
    """
    Fetch a parcel or raise ResourceNotFoundError.

    With ``for_update`` the row stays locked until the caller's transaction
    ends, serializing concurrent mutations of the same parcel.
    """
    if for_update:
        result = await db.execute(
            select(Parcel)
            .where(Parcel.id == parcel_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        parcel = result.scalar_one_or_none()
    else:
        parcel = await db.get(Parcel, parcel_id)
    if not parcel:
        raise ResourceNotFoundError("Parcel", parcel_id)
    return parcel


async def find_delivery_for_parcel(db: AsyncSession, parcel_id: int) -> Optional[Delivery]:
    result = await db.execute(select(Delivery).where(Delivery.parcel_id == parcel_id))
    return result.scalar_one_or_none()


class ParcelLifecycleService:

    @staticmethod
    async def create_parcel(db: AsyncSession, current_user: dict, data: ParcelCreate) -> Parcel:
        """
        Create a parcel owned by the caller.

        Flow:
        1. Role check (any authenticated role)
        2. Receiver must exist
        3. Allocate a unique tracking number
        4. Persist parcel (PENDING) + PENDING tracking event at pickup address

        Raises:
            BadRequestError: receiver does not exist
            ConflictError: tracking number taken concurrently
        """
        policies.authorize(Operation.PARCEL_CREATE, current_user)

        receiver = await db.get(User, data.receiver_id)
        if not receiver:
            raise BadRequestError(
                "Receiver not found",
                details={"receiver_id": data.receiver_id}
            )

        tracking_number = await assign_tracking_number(db)

        parcel = Parcel(
            tracking_number=tracking_number,
            sender_id=current_user["user_id"],
            receiver_id=data.receiver_id,
            description=data.description,
            weight=data.weight,
            dimensions=data.dimensions,
            value=data.value,
            priority=data.priority,
            special_instructions=data.special_instructions,
            pickup_address=data.pickup_address,
            delivery_address=data.delivery_address,
            estimated_delivery=data.estimated_delivery,
            status=ParcelStatus.PENDING,
        )

        try:
            async with unit_of_work(db):
                db.add(parcel)
                await db.flush()  # parcel.id for the event

                TrackingLog.append_event(
                    db,
                    parcel_id=parcel.id,
                    status=ParcelStatus.PENDING,
                    description=CREATED_DESCRIPTION,
                    location=parcel.pickup_address,
                )
                log_event(
                    db,
                    action=AuditAction.PARCEL_CREATED,
                    actor=current_user,
                    parcel_id=parcel.id,
                    metadata={"tracking_number": tracking_number},
                )
        except IntegrityError as exc:
            raise ConflictError(
                "Tracking number already in use, retry the request",
                details={"tracking_number": tracking_number}
            ) from exc

        await db.refresh(parcel)
        logger.info("Parcel %s created by user %s", parcel.tracking_number, current_user["user_id"])
        return parcel

    @staticmethod
    async def update_status(
        db: AsyncSession,
        current_user: dict,
        parcel_id: int,
        update: ParcelStatusUpdate,
    ) -> Parcel:
        """
        Set a parcel's status and append the matching tracking event.

        Any target status is accepted regardless of the current one.
        PICKED_UP stamps pickup_date, DELIVERED stamps delivery_date.
        """
        policies.authorize(Operation.PARCEL_UPDATE_STATUS, current_user)
        parcel = await load_parcel(db, parcel_id, for_update=True)

        previous_status = parcel.status
        now = utcnow()

        async with unit_of_work(db):
            parcel.status = update.status
            if update.status == ParcelStatus.PICKED_UP:
                parcel.pickup_date = now
            elif update.status == ParcelStatus.DELIVERED:
                parcel.delivery_date = now

            TrackingLog.append_event(
                db,
                parcel_id=parcel.id,
                status=update.status,
                description=update.description,
                location=update.location,
                latitude=update.latitude,
                longitude=update.longitude,
                timestamp=now,
            )
            log_event(
                db,
                action=AuditAction.PARCEL_STATUS_UPDATED,
                actor=current_user,
                parcel_id=parcel.id,
                metadata={
                    "previous_status": previous_status.value,
                    "new_status": update.status.value,
                },
            )

        await db.refresh(parcel)
        logger.info(
            "Parcel %s status %s -> %s by user %s",
            parcel.tracking_number, previous_status.value, parcel.status.value, current_user["user_id"]
        )
        return parcel

    @staticmethod
    async def delete_parcel(db: AsyncSession, current_user: dict, parcel_id: int) -> None:
        """
        Delete a parcel.

        Only the sender may delete, only while PENDING and before any
        delivery exists. Tracking events go with it via the FK cascade.
        """
        policies.authorize(Operation.PARCEL_DELETE, current_user)
        parcel = await load_parcel(db, parcel_id, for_update=True)

        policies.ensure_sender(parcel, current_user)

        if parcel.status != ParcelStatus.PENDING:
            raise ConflictError(
                "Only pending parcels can be deleted",
                details={"status": parcel.status.value}
            )

        if await find_delivery_for_parcel(db, parcel.id):
            raise ConflictError("Parcel already has a delivery and cannot be deleted")

        tracking_number = parcel.tracking_number
        async with unit_of_work(db):
            log_event(
                db,
                action=AuditAction.PARCEL_DELETED,
                actor=current_user,
                parcel_id=parcel.id,
                metadata={"tracking_number": tracking_number},
            )
            await db.delete(parcel)

        logger.info("Parcel %s deleted by user %s", tracking_number, current_user["user_id"])

    @staticmethod
    async def get_parcel(db: AsyncSession, current_user: dict, parcel_id: int) -> Parcel:
        policies.authorize(Operation.PARCEL_READ, current_user)
        parcel = await load_parcel(db, parcel_id)
        policies.ensure_can_view_parcel(parcel, current_user)
        return parcel

    @staticmethod
    async def get_parcel_by_tracking_number(
        db: AsyncSession,
        current_user: dict,
        tracking_number: str,
    ) -> Parcel:
        policies.authorize(Operation.PARCEL_READ, current_user)
        result = await db.execute(
            select(Parcel).where(Parcel.tracking_number == tracking_number)
        )
        parcel = result.scalar_one_or_none()
        if not parcel:
            raise ResourceNotFoundError("Parcel", tracking_number)
        policies.ensure_can_view_parcel(parcel, current_user)
        return parcel

    @staticmethod
    async def list_parcels(
        db: AsyncSession,
        current_user: dict,
        status: Optional[ParcelStatus] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Tuple[List[Parcel], int]:
        """
        List visible parcels, newest first.

        Customers get only parcels they send or receive.

        Returns:
            (parcels on the requested page, total matching)
        """
        role = policies.authorize(Operation.PARCEL_READ, current_user)

        page = max(1, page)
        page_size = min(max(1, page_size or settings.default_page_size), settings.max_page_size)

        filters = []
        if role not in policies.UNRESTRICTED_PARCEL_READERS:
            user_id = current_user["user_id"]
            filters.append(or_(Parcel.sender_id == user_id, Parcel.receiver_id == user_id))
        if status:
            filters.append(Parcel.status == status)

        count_query = select(func.count(Parcel.id))
        query = select(Parcel)
        if filters:
            count_query = count_query.where(*filters)
            query = query.where(*filters)

        total_result = await db.execute(count_query)
        total = total_result.scalar()

        offset = (page - 1) * page_size
        query = (
            query
            .order_by(desc(Parcel.created_at), desc(Parcel.id))
            .offset(offset)
            .limit(page_size)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total
