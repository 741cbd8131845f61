"""
Parcel database model.

A parcel moves from intake through payment, rider assignment and delivery.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum
from sqlalchemy.sql import func
from zapshift_backend.app.db.session import Base
from zapshift_backend.app.models.parcel_enums import ParcelStatus, PaymentStatus


class Parcel(Base):
    """
    Parcel model.

    tracking_id is the public reference and is never rewritten after insert.
    The rider_* columns are a denormalized copy of the assigned rider,
    not a live join.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Public reference
    tracking_id = Column(String(32), unique=True, nullable=False, index=True)

    # Contents
    parcel_name = Column(String(200), nullable=False)
    parcel_type = Column(String(50), nullable=True)
    weight_kg = Column(Float, nullable=True)
    cost = Column(Float, nullable=False)

    # Sender
    sender_name = Column(String(100), nullable=False)
    sender_email = Column(String(255), nullable=False, index=True)
    sender_phone = Column(String(30), nullable=True)
    sender_district = Column(String(100), nullable=True)
    sender_address = Column(String(500), nullable=True)

    # Receiver
    receiver_name = Column(String(100), nullable=False)
    receiver_email = Column(String(255), nullable=True)
    receiver_phone = Column(String(30), nullable=True)
    receiver_district = Column(String(100), nullable=True)
    receiver_address = Column(String(500), nullable=False)

    # Status (free-form string, see ParcelStatus for the well-known values)
    delivery_status = Column(String(50), default=ParcelStatus.UNPAID.value, nullable=False, index=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False, index=True)

    # Assigned rider (denormalized)
    rider_id = Column(Integer, nullable=True, index=True)
    rider_name = Column(String(100), nullable=True)
    rider_email = Column(String(255), nullable=True, index=True)
    rider_phone = Column(String(30), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking='{self.tracking_id}', status='{self.delivery_status}')>"
