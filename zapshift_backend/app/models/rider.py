"""
Rider database model.

Riders self-register and wait for an administrator's decision.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from zapshift_backend.app.db.session import Base
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus


class Rider(Base):
    """
    Rider model.

    `status` is the approval state and is only changed by an admin decision.
    `work_status` flips between AVAILABLE and IN_DELIVERY as parcels are
    assigned, rejected and completed.
    """
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Contact
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(30), nullable=True)

    # Coverage
    region = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True, index=True)

    # Status
    status = Column(Enum(RiderStatus), default=RiderStatus.PENDING, nullable=False, index=True)
    work_status = Column(Enum(WorkStatus), default=WorkStatus.AVAILABLE, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Rider(id={self.id}, email='{self.email}', status='{self.status.value}', work='{self.work_status.value}')>"
