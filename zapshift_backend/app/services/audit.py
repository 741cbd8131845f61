"""
Audit logging service for administrative actions.

Provides centralized logging for rider approvals and removals, and parcel removals.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from zapshift_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    RIDER_APPROVED = "RIDER_APPROVED"
    RIDER_REJECTED = "RIDER_REJECTED"
    RIDER_STATUS_CHANGED = "RIDER_STATUS_CHANGED"
    USER_ROLE_PROMOTED = "USER_ROLE_PROMOTED"
    RIDER_REMOVED = "RIDER_REMOVED"
    PARCEL_REMOVED = "PARCEL_REMOVED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_email: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Add an audit entry to the current transaction.

    The entry is flushed, not committed, so it is written together with
    the action it describes.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_email: Email of the principal performing the action
        target_type: Kind of record acted upon ("rider", "parcel", "user")
        target_id: ID of the record acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_email=actor_email,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
