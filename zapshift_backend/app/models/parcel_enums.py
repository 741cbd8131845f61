"""
Parcel Status Enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Well-known delivery statuses.

    Status flow:
        unpaid → pending-pickup → rider-assigned → rider-arriving → delivered
        rider-assigned / rider-arriving can fall back to pending-pickup on rejection

    The delivery_status column stores plain strings, so callers may
    supply statuses outside this set when the transition mode is open.
    """
    UNPAID = "unpaid"
    PENDING_PICKUP = "pending-pickup"
    RIDER_ASSIGNED = "rider-assigned"
    RIDER_ARRIVING = "rider-arriving"
    DELIVERED = "delivered"


class PaymentStatus(str, enum.Enum):
    """Parcel payment status enumeration."""
    UNPAID = "unpaid"
    PAID = "paid"


TERMINAL_STATUSES = frozenset({ParcelStatus.DELIVERED.value})
