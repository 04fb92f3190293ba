"""
Delivery database model.

A delivery is the work order assigning a driver to move one parcel.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.delivery_enums import DeliveryPhase


class Delivery(Base):
    """
    Delivery model.

    Exactly one delivery per parcel (unique parcel_id). The lifecycle is
    carried by nullable timestamps: assigned_at ≤ started_at ≤ completed_at,
    each of started_at/completed_at written at most once.
    """
    __tablename__ = "deliveries"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    parcel_id = Column(Integer, ForeignKey('parcels.id'), unique=True, nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    # Lifecycle
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Latest ping, denormalized
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)

    # Completion artifacts
    notes = Column(Text, nullable=True)
    proof_of_delivery = Column(Text, nullable=True)
    signature = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def phase(self) -> DeliveryPhase:
        """Read-only phase computed from the lifecycle timestamps."""
        if self.completed_at is not None:
            return DeliveryPhase.COMPLETED
        if self.started_at is not None:
            return DeliveryPhase.STARTED
        if self.driver_id is not None and self.assigned_at is not None:
            return DeliveryPhase.ASSIGNED
        return DeliveryPhase.UNASSIGNED

    def __repr__(self):
        return f"<Delivery(id={self.id}, parcel_id={self.parcel_id}, phase='{self.phase.value}')>"
