"""
Payment Reconciler (Domain Logic).

Applies gateway payment confirmations to parcels exactly once.
Must be transactional and idempotent.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from zapshift_backend.app.core.exceptions import ValidationError
from zapshift_backend.app.domain.parcels.state_machine import ParcelStateMachine
from zapshift_backend.app.models.parcel_enums import PaymentStatus
from zapshift_backend.app.models.payment import Payment
from zapshift_backend.app.schemas.payment import (
    GatewaySession,
    PaymentResponse,
    ReconciliationResult,
    ReconciliationStatus,
)
from zapshift_backend.app.services.payment_gateway import PaymentGateway
from zapshift_backend.app.services.reconcile_lock import LockOutcome, ReconcileLock

logger = logging.getLogger("zapshift.payments")

GATEWAY_PAID = "paid"


class PaymentReconciler:

    def __init__(
        self,
        db: AsyncSession,
        state_machine: ParcelStateMachine,
        gateway: PaymentGateway,
        lock: ReconcileLock,
    ):
        self.db = db
        self.state_machine = state_machine
        self.gateway = gateway
        self.lock = lock

    async def reconcile(self, session_ref: str) -> ReconciliationResult:
        """
        Apply the payment confirmed by a gateway session.

        Flow:
        1. Retrieve session from the gateway
        2. Not paid yet -> PENDING, no side effects
        3. Take the per-transaction lock (BUSY -> IN_PROGRESS, no side effects)
        4. Idempotency Check (existing Payment for transaction id)
        5. Insert Payment + mark parcel paid, one commit
        6. Unique violation on insert -> another delivery won; report it

        Args:
            session_ref: Gateway checkout session id

        Returns:
            ReconciliationResult; PENDING and IN_PROGRESS are safe to retry
        """
        session = await self.gateway.retrieve_session(session_ref)

        if session.payment_status != GATEWAY_PAID:
            logger.info("Session %s not paid yet (%s)", session_ref, session.payment_status)
            return ReconciliationResult(
                status=ReconciliationStatus.PENDING,
                transaction_id=session.transaction_id,
                tracking_id=session.metadata.tracking_id,
                message=f"Payment status is '{session.payment_status}'",
            )

        if not session.transaction_id:
            raise ValidationError(
                "Paid session has no transaction id",
                details={"session_id": session_ref},
            )

        transaction_id = session.transaction_id

        async with self.lock.guard(transaction_id) as outcome:
            if outcome == LockOutcome.BUSY:
                logger.info("Transaction %s is being reconciled by another request", transaction_id)
                return ReconciliationResult(
                    status=ReconciliationStatus.IN_PROGRESS,
                    transaction_id=transaction_id,
                    tracking_id=session.metadata.tracking_id,
                    message="Reconciliation already in progress",
                )

            existing = await self.find_payment(transaction_id)
            if existing:
                return self._already_processed(existing)

            try:
                payment, parcel_already_paid = await self._apply(session)
            except IntegrityError:
                await self.db.rollback()
                logger.warning("Transaction %s recorded concurrently, treating as processed", transaction_id)
                existing = await self.find_payment(transaction_id)
                if existing is None:
                    raise
                return self._already_processed(existing)
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Transaction %s applied to parcel %s (%s)",
            transaction_id, payment.parcel_id, payment.tracking_id
        )
        return ReconciliationResult(
            status=ReconciliationStatus.PAID,
            already_processed=False,
            transaction_id=transaction_id,
            tracking_id=payment.tracking_id,
            parcel_already_paid=parcel_already_paid,
            payment=PaymentResponse.model_validate(payment),
            message="Payment recorded; parcel was already paid" if parcel_already_paid else "Payment applied",
        )

    async def _apply(self, session: GatewaySession) -> Tuple[Payment, bool]:
        """
        Record the payment and move the parcel to pending pickup.

        A parcel already paid by an earlier transaction keeps its state; the
        new payment is still recorded so the transaction is settled and later
        deliveries report ALREADY_PROCESSED.
        """
        parcel = await self.state_machine.get(session.metadata.parcel_id)
        already_paid = parcel.payment_status == PaymentStatus.PAID

        # Payment row first: a duplicate transaction fails here before the parcel moves
        payment = Payment(
            transaction_id=session.transaction_id,
            parcel_id=parcel.id,
            parcel_name=session.metadata.parcel_name or parcel.parcel_name,
            tracking_id=parcel.tracking_id,
            customer_email=session.customer_email,
            amount=session.amount,
            currency=session.currency,
            payment_status=session.payment_status,
        )
        self.db.add(payment)
        await self.db.flush()

        if already_paid:
            logger.warning(
                "Parcel %s already paid, recording transaction %s without a status change",
                parcel.id, session.transaction_id
            )
        else:
            await self.state_machine.mark_paid(parcel.id, session.metadata.tracking_id)

        await self.db.commit()
        await self.db.refresh(payment)
        return payment, already_paid

    async def find_payment(self, transaction_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment).where(Payment.transaction_id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def list_payments(self, customer_email: Optional[str] = None) -> List[Payment]:
        """Payment history, most recent first."""
        query = select(Payment).order_by(Payment.paid_at.desc(), Payment.id.desc())
        if customer_email:
            query = query.where(Payment.customer_email == customer_email)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def _already_processed(payment: Payment) -> ReconciliationResult:
        return ReconciliationResult(
            status=ReconciliationStatus.ALREADY_PROCESSED,
            already_processed=True,
            transaction_id=payment.transaction_id,
            tracking_id=payment.tracking_id,
            payment=PaymentResponse.model_validate(payment),
            message="Payment already processed",
        )
