"""
Parcel database model.

Customers create parcels; the status column is the cached latest value
of the parcel's tracking log.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.parcel_enums import ParcelStatus, ParcelPriority


class Parcel(Base):
    """
    Parcel model for the tracking platform.

    A parcel is owned by its sender from creation. Its tracking number is
    unique and assigned once. It may be deleted only while PENDING and
    before a delivery exists.
    """
    __tablename__ = "parcels"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tracking_number = Column(String(32), unique=True, nullable=False, index=True)

    # Parties
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Descriptive attributes
    description = Column(String(500), nullable=False)
    weight = Column(Float, nullable=False)
    dimensions = Column(String(100), nullable=True)
    value = Column(Float, nullable=True)
    priority = Column(Enum(ParcelPriority), default=ParcelPriority.STANDARD, nullable=False)
    special_instructions = Column(Text, nullable=True)

    # Addresses
    pickup_address = Column(String(500), nullable=False)
    delivery_address = Column(String(500), nullable=False)

    # Status
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    pickup_date = Column(DateTime(timezone=True), nullable=True)
    delivery_date = Column(DateTime(timezone=True), nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking='{self.tracking_number}', status='{self.status.value}')>"
