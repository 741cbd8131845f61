"""
Tracking ledger service.

Append-only event history keyed by tracking identifier.
"""

import logging
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from zapshift_backend.app.models.tracking_event import TrackingEvent

logger = logging.getLogger("zapshift.tracking")


def describe_status(status: str) -> str:
    """Human-readable label for a status: hyphens become spaces, underscores are kept."""
    return status.replace("-", " ")


class TrackingLedger:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, tracking_id: str, status: str) -> TrackingEvent:
        """
        Append an event to the ledger.

        Never checks that a parcel with this tracking id exists.
        Flushes but does not commit: the event lands with the caller's
        transaction.

        Args:
            tracking_id: Public tracking identifier
            status: Status label being recorded

        Returns:
            The pending TrackingEvent (id populated)
        """
        event = TrackingEvent(
            tracking_id=tracking_id,
            status=status,
            details=describe_status(status),
        )
        self.db.add(event)
        await self.db.flush()

        logger.info("Tracking event %s recorded for %s", status, tracking_id)
        return event

    async def list_by_tracking(self, tracking_id: str) -> List[TrackingEvent]:
        """Events for a tracking id, oldest first (ties broken by insertion order)."""
        result = await self.db.execute(
            select(TrackingEvent)
            .where(TrackingEvent.tracking_id == tracking_id)
            .order_by(TrackingEvent.created_at.asc(), TrackingEvent.id.asc())
        )
        return list(result.scalars().all())
