"""
Parcel State Machine (Domain Logic).

Owns every change to a parcel's delivery status. Each transition writes
its tracking event and any coupled rider change in the same transaction
as the parcel update.
"""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zapshift_backend.app.core.config import settings
from zapshift_backend.app.core.exceptions import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
)
from zapshift_backend.app.domain.parcels.transitions import TransitionPolicy, is_terminal
from zapshift_backend.app.models.parcel import Parcel
from zapshift_backend.app.models.parcel_enums import ParcelStatus, PaymentStatus
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus
from zapshift_backend.app.services.audit import log_event, AuditAction
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager
from zapshift_backend.app.services.tracking_ledger import TrackingLedger

logger = logging.getLogger("zapshift.parcels")

PARCEL_CREATED = "parcel-created"
PARCEL_PAID = "parcel-paid"
DRIVER_ASSIGNED = "driver-assigned"


def generate_tracking_id(prefix: Optional[str] = None) -> str:
    """ZAP- followed by 10 uppercase hex characters (5 random bytes)."""
    return f"{prefix or settings.tracking_id_prefix}{secrets.token_hex(5).upper()}"


class ParcelStateMachine:
    """
    create/assign_rider/update_status/reject_assignment/remove are complete
    units of work and commit. mark_paid only flushes: the reconciler commits it
    together with the payment row.
    """

    def __init__(
        self,
        db: AsyncSession,
        ledger: TrackingLedger,
        riders: RiderAssignmentManager,
        policy: Optional[TransitionPolicy] = None,
        track_rejections: Optional[bool] = None,
    ):
        self.db = db
        self.ledger = ledger
        self.riders = riders
        self.policy = policy or TransitionPolicy(
            mode=settings.status_transition_mode,
            release_policy=settings.rider_release_policy,
        )
        self.track_rejections = settings.track_rejections if track_rejections is None else track_rejections

    async def get(self, parcel_id: int) -> Parcel:
        parcel = await self.db.get(Parcel, parcel_id)
        if not parcel:
            raise NotFoundError("Parcel", parcel_id)
        return parcel

    async def create(self, parcel_data: Dict[str, Any]) -> Parcel:
        """
        Intake a parcel.

        Flow:
        1. Validate required fields
        2. Issue a tracking id not already in use
        3. Persist as UNPAID
        4. Record parcel-created

        Args:
            parcel_data: Parcel attributes (already schema-validated by the API)

        Returns:
            Created parcel
        """
        missing = [
            field for field in ("parcel_name", "sender_name", "sender_email", "receiver_name", "receiver_address")
            if not parcel_data.get(field)
        ]
        if missing or parcel_data.get("cost") is None:
            raise ValidationError(
                "Missing required parcel fields",
                details={"missing": missing + (["cost"] if parcel_data.get("cost") is None else [])},
            )

        tracking_id = await self._issue_tracking_id()

        async with self._transaction("create"):
            parcel = Parcel(
                **parcel_data,
                tracking_id=tracking_id,
                delivery_status=ParcelStatus.UNPAID.value,
                payment_status=PaymentStatus.UNPAID,
            )
            self.db.add(parcel)
            await self.db.flush()
            await self.ledger.append(tracking_id, PARCEL_CREATED)

        await self.db.refresh(parcel)
        logger.info("Parcel %s created with tracking id %s", parcel.id, tracking_id)
        return parcel

    async def mark_paid(self, parcel_id: int, tracking_id: Optional[str] = None) -> Parcel:
        """
        UNPAID -> PENDING_PICKUP once the reconciler has recorded a payment.

        The parcel's own tracking id always wins over the one carried in the
        gateway metadata.

        Raises:
            NotFoundError: Unknown parcel
            ConflictError: Parcel already paid
            ValidationError: Transition refused by a strict policy
        """
        parcel = await self.get(parcel_id)

        if tracking_id and tracking_id != parcel.tracking_id:
            logger.warning(
                "Payment for parcel %s carries tracking id %s, keeping %s",
                parcel_id, tracking_id, parcel.tracking_id
            )

        if parcel.payment_status == PaymentStatus.PAID:
            raise ConflictError(
                "Parcel has already been paid",
                details={"parcel_id": parcel_id, "tracking_id": parcel.tracking_id},
            )
        self.policy.check_payment(parcel.delivery_status)

        parcel.payment_status = PaymentStatus.PAID
        parcel.delivery_status = ParcelStatus.PENDING_PICKUP.value
        await self.db.flush()
        await self.ledger.append(parcel.tracking_id, PARCEL_PAID)

        logger.info("Parcel %s paid", parcel_id)
        return parcel

    async def assign_rider(self, parcel_id: int, rider_id: int) -> Parcel:
        """
        Assign an approved, available rider and mark the rider in delivery.

        Re-assigning to a different rider frees the previous one.

        Raises:
            NotFoundError: Unknown parcel or rider
            ValidationError: Rider not approved, or parcel status refuses assignment
            ConflictError: Rider is already delivering another parcel
        """
        async with self._transaction("assign_rider"):
            parcel = await self.get(parcel_id)
            rider = await self.riders.get(rider_id)

            self.policy.check_assignment(parcel.delivery_status)

            if rider.status != RiderStatus.APPROVED:
                raise ValidationError(
                    "Rider is not approved",
                    details={"rider_id": rider_id, "rider_status": rider.status.value},
                )
            if rider.work_status == WorkStatus.IN_DELIVERY and parcel.rider_id != rider.id:
                raise ConflictError(
                    "Rider is already in delivery",
                    details={"rider_id": rider_id},
                )

            previous_rider_id = parcel.rider_id
            if previous_rider_id and previous_rider_id != rider.id:
                await self.riders.release(previous_rider_id)

            parcel.delivery_status = ParcelStatus.RIDER_ASSIGNED.value
            parcel.rider_id = rider.id
            parcel.rider_name = rider.name
            parcel.rider_email = rider.email
            parcel.rider_phone = rider.phone

            await self.riders.assign(rider.id)
            await self.ledger.append(parcel.tracking_id, DRIVER_ASSIGNED)

        await self.db.refresh(parcel)
        logger.info("Parcel %s assigned to rider %s (previous: %s)", parcel_id, rider_id, previous_rider_id)
        return parcel

    async def update_status(self, parcel_id: int, new_status: str, rider_id: int) -> Parcel:
        """
        Rider-driven status change.

        The rider is released according to the release policy; with the
        default policy every update frees the rider, terminal or not.

        Raises:
            NotFoundError: Unknown parcel or rider
            ValidationError: Rider is not the one on the parcel, or strict transition refused
        """
        async with self._transaction("update_status"):
            parcel = await self.get(parcel_id)
            await self._require_assigned(parcel, rider_id)
            self.policy.check_update(parcel.delivery_status, new_status)

            previous = parcel.delivery_status
            parcel.delivery_status = new_status

            if self.policy.releases_rider(new_status):
                await self.riders.release(rider_id)
            await self.ledger.append(parcel.tracking_id, new_status)

        await self.db.refresh(parcel)
        logger.info("Parcel %s status %s -> %s by rider %s", parcel_id, previous, new_status, rider_id)
        return parcel

    async def reject_assignment(self, parcel_id: int, new_status: str, rider_id: int) -> Parcel:
        """
        Rider declines the parcel: status reverts to the caller-supplied
        value, the rider is released and the assignment is cleared.
        """
        async with self._transaction("reject_assignment"):
            parcel = await self.get(parcel_id)
            await self._require_assigned(parcel, rider_id)
            self.policy.check_rejection(parcel.delivery_status, new_status)

            previous = parcel.delivery_status
            parcel.delivery_status = new_status
            parcel.rider_id = None
            parcel.rider_name = None
            parcel.rider_email = None
            parcel.rider_phone = None

            await self.riders.release(rider_id)
            if self.track_rejections:
                await self.ledger.append(parcel.tracking_id, new_status)

        await self.db.refresh(parcel)
        logger.info("Rider %s rejected parcel %s (%s -> %s)", rider_id, parcel_id, previous, new_status)
        return parcel

    async def remove(self, parcel_id: int, actor_email: Optional[str] = None) -> None:
        """
        Administrative removal.

        A rider still carrying the parcel (not yet delivered) is released in
        the same transaction. Tracking events for the parcel are kept.

        Raises:
            NotFoundError: Unknown parcel
        """
        async with self._transaction("remove"):
            parcel = await self.get(parcel_id)
            tracking_id = parcel.tracking_id

            released_rider_id = None
            if parcel.rider_id and not is_terminal(parcel.delivery_status):
                await self.riders.release(parcel.rider_id)
                released_rider_id = parcel.rider_id

            await log_event(
                self.db,
                action=AuditAction.PARCEL_REMOVED,
                actor_email=actor_email,
                target_type="parcel",
                target_id=parcel.id,
                metadata={
                    "tracking_id": tracking_id,
                    "delivery_status": parcel.delivery_status,
                    "released_rider_id": released_rider_id,
                },
            )
            await self.db.delete(parcel)

        logger.info("Parcel %s (%s) removed by %s, released rider: %s",
                    parcel_id, tracking_id, actor_email, released_rider_id)

    async def _require_assigned(self, parcel: Parcel, rider_id: int) -> None:
        await self.riders.get(rider_id)
        if parcel.rider_id != rider_id:
            raise ValidationError(
                "Rider is not assigned to this parcel",
                details={"parcel_id": parcel.id, "rider_id": rider_id, "assigned_rider_id": parcel.rider_id},
            )

    async def _issue_tracking_id(self) -> str:
        for _ in range(settings.tracking_id_max_attempts):
            candidate = generate_tracking_id()
            result = await self.db.execute(select(Parcel.id).where(Parcel.tracking_id == candidate))
            if result.scalar_one_or_none() is None:
                return candidate
            logger.warning("Tracking id collision on %s, regenerating", candidate)
        raise ConflictError("Could not issue a unique tracking id")

    @asynccontextmanager
    async def _transaction(self, operation: str):
        """
        Commit the block as one unit. Anything raised before the commit
        rolls back every pending change. A failed commit leaves the outcome
        unknown and is reported as a consistency error.
        """
        try:
            yield
        except Exception:
            await self.db.rollback()
            raise

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise ConsistencyError(f"{operation} commit failed: {e}") from e
