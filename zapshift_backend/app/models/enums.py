"""
User roles enumeration.

Defines the role types for the parcel delivery system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        USER: Default role, sends parcels
        RIDER: Approved rider, carries parcels
        ADMIN: Assigns riders and approves rider applications
    """
    USER = "user"
    RIDER = "rider"
    ADMIN = "admin"
