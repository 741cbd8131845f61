"""
Rider assignment manager.

Owns every change to a rider's work_status and the admin approval flow.
"""

import logging
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from zapshift_backend.app.models.rider import Rider
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus
from zapshift_backend.app.models.user import User
from zapshift_backend.app.models.enums import UserRole
from zapshift_backend.app.core.exceptions import ConflictError, NotFoundError
from zapshift_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("zapshift.riders")


class RiderAssignmentManager:
    """
    assign/release only flush; the parcel operation that drives them
    commits both records together. register/approve/remove are complete units
    of work and commit themselves.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, rider_id: int) -> Rider:
        rider = await self.db.get(Rider, rider_id)
        if not rider:
            raise NotFoundError("Rider", rider_id)
        return rider

    async def assign(self, rider_id: int) -> Rider:
        """Mark a rider as carrying a parcel."""
        rider = await self.get(rider_id)
        rider.work_status = WorkStatus.IN_DELIVERY
        await self.db.flush()

        logger.info("Rider %s is now in delivery", rider_id)
        return rider

    async def release(self, rider_id: int) -> Rider:
        """Return a rider to the available pool."""
        rider = await self.get(rider_id)
        rider.work_status = WorkStatus.AVAILABLE
        await self.db.flush()

        logger.info("Rider %s released", rider_id)
        return rider

    async def register(self, rider_data: Dict[str, Any]) -> Rider:
        """Self-registration. New riders wait in PENDING for an admin decision."""
        rider = Rider(
            **rider_data,
            status=RiderStatus.PENDING,
            work_status=WorkStatus.AVAILABLE,
        )
        self.db.add(rider)
        await self.db.commit()
        await self.db.refresh(rider)

        logger.info("Rider application %s received from %s", rider.id, rider.email)
        return rider

    async def list_riders(
        self,
        status: Optional[RiderStatus] = None,
        district: Optional[str] = None,
        work_status: Optional[WorkStatus] = None,
    ) -> List[Rider]:
        """Riders matching the given filters, newest first."""
        query = select(Rider).order_by(Rider.created_at.desc(), Rider.id.desc())

        if status:
            query = query.where(Rider.status == status)

        if district:
            query = query.where(Rider.district == district)

        if work_status:
            query = query.where(Rider.work_status == work_status)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def approve(self, rider_id: int, decision: RiderStatus, actor_email: Optional[str] = None) -> Rider:
        """
        Apply an admin decision to a rider application.

        On APPROVED the user account with the rider's email (if any) is
        promoted from USER to the RIDER role. A rider currently carrying a parcel
        keeps its IN_DELIVERY work status.

        Args:
            rider_id: Rider to decide on
            decision: New approval status
            actor_email: Admin performing the action

        Returns:
            Updated rider

        Raises:
            NotFoundError: If the rider does not exist
        """
        rider = await self.get(rider_id)
        previous = rider.status

        rider.status = decision
        if rider.work_status != WorkStatus.IN_DELIVERY:
            rider.work_status = WorkStatus.AVAILABLE

        action = {
            RiderStatus.APPROVED: AuditAction.RIDER_APPROVED,
            RiderStatus.REJECTED: AuditAction.RIDER_REJECTED,
        }.get(decision, AuditAction.RIDER_STATUS_CHANGED)

        await log_event(
            self.db,
            action=action,
            actor_email=actor_email,
            target_type="rider",
            target_id=rider.id,
            metadata={"previous_status": previous.value, "new_status": decision.value},
        )

        if decision == RiderStatus.APPROVED:
            result = await self.db.execute(select(User).where(User.email == rider.email))
            user = result.scalar_one_or_none()
            # Admin accounts are never demoted by a rider approval
            if user and user.role == UserRole.USER:
                user.role = UserRole.RIDER
                await log_event(
                    self.db,
                    action=AuditAction.USER_ROLE_PROMOTED,
                    actor_email=actor_email,
                    target_type="user",
                    target_id=user.id,
                    metadata={"role": UserRole.RIDER.value, "rider_id": rider.id},
                )
            elif not user:
                logger.warning("Approved rider %s has no user account (%s)", rider.id, rider.email)

        await self.db.commit()
        await self.db.refresh(rider)

        logger.info("Rider %s decision: %s -> %s", rider.id, previous.value, decision.value)
        return rider

    async def remove(self, rider_id: int, actor_email: Optional[str] = None) -> None:
        """
        Delete a rider record (Admin action).

        Parcels delivered by the rider keep their rider snapshot.

        Raises:
            NotFoundError: If the rider does not exist
            ConflictError: If the rider is carrying a parcel
        """
        rider = await self.get(rider_id)
        if rider.work_status == WorkStatus.IN_DELIVERY:
            raise ConflictError(
                "Rider is in delivery and cannot be removed",
                details={"rider_id": rider_id},
            )

        await log_event(
            self.db,
            action=AuditAction.RIDER_REMOVED,
            actor_email=actor_email,
            target_type="rider",
            target_id=rider.id,
            metadata={"email": rider.email, "status": rider.status.value},
        )
        await self.db.delete(rider)
        await self.db.commit()

        logger.info("Rider %s removed by %s", rider_id, actor_email)
