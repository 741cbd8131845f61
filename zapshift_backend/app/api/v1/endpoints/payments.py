"""
Payment API Endpoints.

Reconciliation of gateway confirmations and payment history.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from zapshift_backend.app.core.dependencies import get_current_user, get_reconciler
from zapshift_backend.app.core.guards import OwnershipGuard
from zapshift_backend.app.domain.payments.reconciler import PaymentReconciler
from zapshift_backend.app.schemas.payment import (
    PaymentListResponse,
    PaymentResponse,
    ReconciliationResult,
)

router = APIRouter(prefix="/payments", tags=["Payments"])
ownership_guard = OwnershipGuard()


@router.patch("/reconcile", response_model=ReconciliationResult)
async def reconcile_payment(
    session_id: str = Query(..., min_length=1, description="Gateway checkout session id"),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """
    Apply a gateway payment confirmation.

    Safe to call any number of times for the same session: only the
    first successful call records the payment and moves the parcel.
    """
    return await reconciler.reconcile(session_id)


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    email: Optional[str] = Query(None, description="Customer email; must be your own"),
    current_user: dict = Depends(get_current_user),
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """Payment history, most recent first."""
    if email:
        ownership_guard.enforce(email, current_user, "payment history")

    payments = await reconciler.list_payments(email)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )
