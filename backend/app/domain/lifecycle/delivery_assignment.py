"""
Delivery Assignment Service (Domain Logic).

Owns delivery creation, driver assignment, start/complete transitions and
the location trail. Each transition updates the delivery, the parent
parcel's status and the tracking log as one unit of work.

Delivery phase is never stored; it follows from assigned_at, started_at
and completed_at (see Delivery.phase).
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, or_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    BadRequestError,
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from backend.app.db.session import unit_of_work
from backend.app.domain.lifecycle import policies
from backend.app.domain.lifecycle.parcel_lifecycle import load_parcel, find_delivery_for_parcel
from backend.app.domain.lifecycle.policies import Operation
from backend.app.domain.lifecycle.tracking_log import TrackingLog, utcnow
from backend.app.models.delivery import Delivery
from backend.app.models.enums import UserRole
from backend.app.models.location_ping import LocationPing
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.models.user import User
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)


async def load_delivery(db: AsyncSession, delivery_id: int, for_update: bool = False) -> Delivery:
    if for_update:
        result = await db.execute(
            select(Delivery)
            .where(Delivery.id == delivery_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        delivery = result.scalar_one_or_none()
    else:
        delivery = await db.get(Delivery, delivery_id)
    if not delivery:
        raise ResourceNotFoundError("Delivery", delivery_id)
    return delivery


async def apply_transition(
    db: AsyncSession,
    delivery_id: int,
    conflict_message: str,
    *conditions,
    **values,
) -> None:
    """
    Write ``values`` to the delivery only while ``conditions`` still hold.

    Check and write are a single UPDATE, so of two racing transitions only
    one matches the row. The in-memory delivery is stale until refreshed.

    Raises:
        ConflictError: the row no longer matches
    """
    stmt = (
        update(Delivery)
        .where(Delivery.id == delivery_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise ConflictError(conflict_message, details={"delivery_id": delivery_id})


async def resolve_driver(db: AsyncSession, driver_id: int) -> User:
    """
    Look up an assignable driver.

    Raises:
        BadRequestError: user missing, not a DRIVER, or inactive
    """
    driver = await db.get(User, driver_id)
    if not driver or driver.role != UserRole.DRIVER:
        raise BadRequestError("Invalid driver ID", details={"driver_id": driver_id})
    if not driver.is_active:
        raise BadRequestError("Driver is not active", details={"driver_id": driver_id})
    return driver


def ensure_parcel_not_terminal(parcel: Parcel) -> None:
    if parcel.status.is_terminal:
        raise ConflictError(
            f"Parcel is {parcel.status.value} and can no longer change through its delivery",
            details={"parcel_id": parcel.id, "status": parcel.status.value}
        )


def stage_parcel_transition(
    db: AsyncSession,
    parcel: Parcel,
    status: ParcelStatus,
    description: str,
    timestamp: datetime,
    location: Optional[str] = None,
) -> None:
    """Set the parcel status and stage the matching tracking event."""
    parcel.status = status
    TrackingLog.append_event(
        db,
        parcel_id=parcel.id,
        status=status,
        description=description,
        location=location,
        timestamp=timestamp,
    )


class DeliveryAssignmentService:

    @staticmethod
    async def create_delivery(
        db: AsyncSession,
        current_user: dict,
        parcel_id: int,
        driver_id: Optional[int] = None,
    ) -> Delivery:
        """
        Create the delivery for a parcel (Admin only).

        With a driver: stamps assigned_at, moves the parcel to IN_TRANSIT
        and appends an IN_TRANSIT event in the same unit.

        Raises:
            ResourceNotFoundError: parcel absent
            ConflictError: parcel already has a delivery, or is terminal
            BadRequestError: driver_id is not an active driver
        """
        policies.authorize(Operation.DELIVERY_CREATE, current_user)
        parcel = await load_parcel(db, parcel_id, for_update=True)

        if await find_delivery_for_parcel(db, parcel.id):
            raise ConflictError(
                "Delivery already exists for this parcel",
                details={"parcel_id": parcel.id}
            )

        driver = None
        if driver_id is not None:
            driver = await resolve_driver(db, driver_id)
            ensure_parcel_not_terminal(parcel)

        now = utcnow()
        delivery = Delivery(
            parcel_id=parcel.id,
            driver_id=driver.id if driver else None,
            assigned_at=now if driver else None,
        )

        try:
            async with unit_of_work(db):
                db.add(delivery)
                await db.flush()  # unique parcel_id rejects a racing insert here

                if driver:
                    stage_parcel_transition(
                        db, parcel, ParcelStatus.IN_TRANSIT, "Delivery assigned to driver", now
                    )
                log_event(
                    db,
                    action=AuditAction.DELIVERY_CREATED,
                    actor=current_user,
                    parcel_id=parcel.id,
                    delivery_id=delivery.id,
                    metadata={"driver_id": delivery.driver_id},
                )
        except IntegrityError as exc:
            raise ConflictError(
                "Delivery already exists for this parcel",
                details={"parcel_id": parcel_id}
            ) from exc

        await db.refresh(parcel)
        await db.refresh(delivery)
        logger.info("Delivery %s created for parcel %s (driver=%s)", delivery.id, parcel_id, delivery.driver_id)
        return delivery

    @staticmethod
    async def assign_driver(
        db: AsyncSession,
        current_user: dict,
        delivery_id: int,
        driver_id: int,
    ) -> Delivery:
        """
        Assign (or reassign before start) a driver (Admin only).

        Raises:
            ResourceNotFoundError: delivery absent
            BadRequestError: driver_id is not an active driver
            ConflictError: already started/completed, same driver already
                assigned, or parcel terminal
        """
        policies.authorize(Operation.DELIVERY_ASSIGN, current_user)
        delivery = await load_delivery(db, delivery_id, for_update=True)
        driver = await resolve_driver(db, driver_id)

        if delivery.started_at is not None:
            raise ConflictError(
                "Cannot reassign a delivery that has already started",
                details={"phase": delivery.phase.value}
            )
        if delivery.driver_id == driver.id:
            raise ConflictError(
                "Driver is already assigned to this delivery",
                details={"driver_id": driver.id}
            )

        parcel = await load_parcel(db, delivery.parcel_id, for_update=True)
        ensure_parcel_not_terminal(parcel)

        previous_driver_id = delivery.driver_id
        now = utcnow()

        async with unit_of_work(db):
            await apply_transition(
                db, delivery.id, "Delivery was started or reassigned concurrently",
                Delivery.started_at.is_(None),
                or_(Delivery.driver_id.is_(None), Delivery.driver_id != driver.id),
                driver_id=driver.id,
                assigned_at=now,
            )
            stage_parcel_transition(
                db, parcel, ParcelStatus.IN_TRANSIT,
                f"Delivery assigned to {driver.full_name}", now
            )
            log_event(
                db,
                action=AuditAction.DRIVER_ASSIGNED,
                actor=current_user,
                parcel_id=parcel.id,
                delivery_id=delivery.id,
                metadata={"driver_id": driver.id, "previous_driver_id": previous_driver_id},
            )

        await db.refresh(parcel)
        await db.refresh(delivery)
        logger.info("Delivery %s assigned to driver %s", delivery.id, driver.id)
        return delivery

    @staticmethod
    async def start_delivery(db: AsyncSession, current_user: dict, delivery_id: int) -> Delivery:
        """
        Start a delivery (assigned Driver only).

        Stamps started_at once, moves the parcel to OUT_FOR_DELIVERY.
        """
        policies.authorize(Operation.DELIVERY_START, current_user)
        delivery = await load_delivery(db, delivery_id, for_update=True)
        policies.ensure_assigned_driver(delivery, current_user, "start delivery")

        if delivery.started_at is not None:
            raise ConflictError("Delivery already started")

        parcel = await load_parcel(db, delivery.parcel_id, for_update=True)
        ensure_parcel_not_terminal(parcel)

        now = utcnow()
        async with unit_of_work(db):
            await apply_transition(
                db, delivery.id, "Delivery already started or reassigned",
                Delivery.started_at.is_(None),
                Delivery.driver_id == current_user["user_id"],
                started_at=now,
            )
            stage_parcel_transition(
                db, parcel, ParcelStatus.OUT_FOR_DELIVERY, "Parcel is out for delivery", now
            )
            log_event(
                db,
                action=AuditAction.DELIVERY_STARTED,
                actor=current_user,
                parcel_id=parcel.id,
                delivery_id=delivery.id,
            )

        await db.refresh(parcel)
        await db.refresh(delivery)
        logger.info("Delivery %s started by driver %s", delivery.id, current_user["user_id"])
        return delivery

    @staticmethod
    async def complete_delivery(
        db: AsyncSession,
        current_user: dict,
        delivery_id: int,
        notes: Optional[str] = None,
        proof_of_delivery: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> Delivery:
        """
        Complete a delivery (assigned Driver only).

        Stamps completed_at once and stores the artifacts; the parcel becomes
        DELIVERED with delivery_date, and the DELIVERED event carries the
        delivery address as its location.
        """
        policies.authorize(Operation.DELIVERY_COMPLETE, current_user)
        delivery = await load_delivery(db, delivery_id, for_update=True)
        policies.ensure_assigned_driver(delivery, current_user, "complete delivery")

        if delivery.completed_at is not None:
            raise ConflictError("Delivery already completed")
        if delivery.started_at is None:
            raise ConflictError("Delivery has not been started")

        parcel = await load_parcel(db, delivery.parcel_id, for_update=True)
        ensure_parcel_not_terminal(parcel)

        now = utcnow()
        async with unit_of_work(db):
            await apply_transition(
                db, delivery.id, "Delivery already completed",
                Delivery.started_at.isnot(None),
                Delivery.completed_at.is_(None),
                completed_at=now,
                notes=notes,
                proof_of_delivery=proof_of_delivery,
                signature=signature,
            )

            parcel.delivery_date = now
            stage_parcel_transition(
                db, parcel, ParcelStatus.DELIVERED, "Parcel delivered successfully", now,
                location=parcel.delivery_address,
            )
            log_event(
                db,
                action=AuditAction.DELIVERY_COMPLETED,
                actor=current_user,
                parcel_id=parcel.id,
                delivery_id=delivery.id,
                metadata={"has_signature": signature is not None},
            )

        await db.refresh(parcel)
        await db.refresh(delivery)
        logger.info("Delivery %s completed by driver %s", delivery.id, current_user["user_id"])
        return delivery

    @staticmethod
    async def update_location(
        db: AsyncSession,
        current_user: dict,
        delivery_id: int,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
    ) -> LocationPing:
        """
        Record a location ping (assigned Driver only).

        Touches neither the parcel status nor the tracking log. Not audited,
        pings are too frequent.
        """
        policies.authorize(Operation.DELIVERY_UPDATE_LOCATION, current_user)
        delivery = await load_delivery(db, delivery_id, for_update=True)
        policies.ensure_assigned_driver(delivery, current_user, "update location")

        async with unit_of_work(db):
            ping = TrackingLog.append_location(db, delivery, latitude, longitude, accuracy)

        return ping

    @staticmethod
    async def get_delivery(db: AsyncSession, current_user: dict, delivery_id: int) -> Delivery:
        """
        Read a delivery.

        Drivers only read their own; customers only those of parcels they
        send or receive.
        """
        role = policies.authorize(Operation.DELIVERY_READ, current_user)
        delivery = await load_delivery(db, delivery_id)

        if role == UserRole.DRIVER and delivery.driver_id != current_user["user_id"]:
            raise InsufficientPermissionsError("Access denied")

        if role == UserRole.CUSTOMER:
            parcel = await load_parcel(db, delivery.parcel_id)
            policies.ensure_can_view_parcel(parcel, current_user)

        return delivery

    @staticmethod
    async def list_deliveries(db: AsyncSession, current_user: dict) -> List[Delivery]:
        """List visible deliveries, newest first."""
        role = policies.authorize(Operation.DELIVERY_READ, current_user)
        user_id = current_user["user_id"]

        query = select(Delivery)
        if role == UserRole.DRIVER:
            query = query.where(Delivery.driver_id == user_id)
        elif role == UserRole.CUSTOMER:
            query = query.join(Parcel, Parcel.id == Delivery.parcel_id).where(
                or_(Parcel.sender_id == user_id, Parcel.receiver_id == user_id)
            )

        query = query.order_by(desc(Delivery.created_at), desc(Delivery.id))
        result = await db.execute(query)
        return list(result.scalars().all())
