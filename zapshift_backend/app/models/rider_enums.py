"""
Rider Status Enumerations.
"""

import enum


class RiderStatus(str, enum.Enum):
    """Rider application (approval) status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkStatus(str, enum.Enum):
    """Rider availability. Changed only by the rider assignment manager."""
    AVAILABLE = "available"
    IN_DELIVERY = "in-delivery"
