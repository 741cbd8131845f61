"""
Payment Pydantic schemas.

Covers recorded payments, the gateway session view consumed by the
reconciler and the reconciliation outcome.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
import enum


class PaymentResponse(BaseModel):
    """Recorded payment."""
    id: int
    transaction_id: str
    parcel_id: int
    parcel_name: Optional[str]
    tracking_id: str
    customer_email: Optional[str]
    amount: float
    currency: str
    payment_status: str
    paid_at: datetime

    class Config:
        from_attributes = True


class PaymentListResponse(BaseModel):
    payments: List[PaymentResponse]
    total: int


class SessionMetadata(BaseModel):
    """Metadata attached to the checkout session when it was created."""
    parcel_id: int
    tracking_id: str
    parcel_name: Optional[str] = None


class GatewaySession(BaseModel):
    """
    Gateway-confirmed session details.

    amount is in major units (the gateway reports minor units).
    transaction_id may be missing while the session is still open.
    """
    session_id: str
    transaction_id: Optional[str] = None
    payment_status: str
    amount: float = 0.0
    currency: str = "usd"
    customer_email: Optional[str] = None
    metadata: SessionMetadata


class ReconciliationStatus(str, enum.Enum):
    PAID = "paid"                            # applied by this call
    ALREADY_PROCESSED = "already_processed"  # applied by an earlier delivery
    PENDING = "pending"                      # gateway has not confirmed payment yet
    IN_PROGRESS = "in_progress"              # another delivery holds the lock


class ReconciliationResult(BaseModel):
    """Outcome of a reconcile call. PENDING and IN_PROGRESS are safe to retry."""
    status: ReconciliationStatus
    already_processed: bool = False
    parcel_already_paid: bool = False  # payment recorded, parcel was paid by an earlier transaction
    transaction_id: Optional[str] = None
    tracking_id: Optional[str] = None
    payment: Optional[PaymentResponse] = None
    message: str = Field(default="")
