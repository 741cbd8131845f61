"""
Tracking Event database model.

Append-only history of status changes for a tracking identifier.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from zapshift_backend.app.db.session import Base


class TrackingEvent(Base):
    """
    Tracking event model.

    tracking_id is an index, not a foreign key: events may be written for
    a tracking id whose parcel no longer (or does not yet) exist.
    NO updates or deletions allowed.
    """
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    tracking_id = Column(String(32), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    details = Column(String(100), nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<TrackingEvent(id={self.id}, tracking='{self.tracking_id}', status='{self.status}')>"
