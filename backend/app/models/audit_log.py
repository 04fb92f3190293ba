"""
Audit Log Database Model.

Tracks who performed each parcel and delivery mutation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking lifecycle actions.

    Events logged:
    - PARCEL_CREATED / PARCEL_STATUS_UPDATED / PARCEL_DELETED
    - DELIVERY_CREATED / DRIVER_ASSIGNED
    - DELIVERY_STARTED / DELIVERY_COMPLETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(255), nullable=True)
    actor_role = Column(String(20), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which entity was affected
    parcel_id = Column(Integer, index=True, nullable=True)
    delivery_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, parcel={self.parcel_id})>"
