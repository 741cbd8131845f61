"""
Payment database model.

One row per confirmed gateway transaction.
"""

from sqlalchemy import Column, Integer, Float, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from zapshift_backend.app.db.session import Base


class Payment(Base):
    """
    Payment model.

    transaction_id is the gateway's idempotency key; the unique constraint
    makes a second insert for the same transaction fail in the store.
    Immutable once written - no updated_at.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    transaction_id = Column(String(255), nullable=False)

    # Linkage (soft - parcels may be removed administratively)
    parcel_id = Column(Integer, nullable=False, index=True)
    parcel_name = Column(String(200), nullable=True)
    tracking_id = Column(String(32), nullable=False, index=True)

    # Financials
    customer_email = Column(String(255), nullable=True, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False)
    payment_status = Column(String(30), nullable=False)

    paid_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('transaction_id', name='uq_payments_transaction_id'),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, tx='{self.transaction_id}', amount={self.amount})>"
