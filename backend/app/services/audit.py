"""
Audit logging service for tracking who performed lifecycle actions.

Audit rows are staged on the caller's session and committed together with
the mutation they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    PARCEL_CREATED = "PARCEL_CREATED"
    PARCEL_STATUS_UPDATED = "PARCEL_STATUS_UPDATED"
    PARCEL_DELETED = "PARCEL_DELETED"

    DELIVERY_CREATED = "DELIVERY_CREATED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DELIVERY_STARTED = "DELIVERY_STARTED"
    DELIVERY_COMPLETED = "DELIVERY_COMPLETED"


def log_event(
    db: AsyncSession,
    action: str,
    actor: Optional[dict] = None,
    parcel_id: Optional[int] = None,
    delivery_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit event on the session.

    Nothing is flushed or committed here; the row lands in the same
    transaction as the mutation.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor: Identity payload of the user performing the action
        parcel_id: Affected parcel
        delivery_id: Affected delivery
        metadata: Additional context as JSON

    Returns:
        Pending AuditLog instance
    """
    actor = actor or {}
    role = actor.get("role")

    audit_log = AuditLog(
        actor_id=actor.get("user_id"),
        actor_username=actor.get("sub"),
        actor_role=getattr(role, "value", role),
        action=action,
        parcel_id=parcel_id,
        delivery_id=delivery_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    parcel_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        parcel_id: Filter by affected parcel
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if parcel_id:
        query = query.where(AuditLog.parcel_id == parcel_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
