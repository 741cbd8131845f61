"""
Security guards for role-based and ownership-based access control.

Roles live in the user store, keyed by the email the token carries.
"""

from typing import List
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from zapshift_backend.app.core.dependencies import get_current_user
from zapshift_backend.app.core.exceptions import InsufficientPermissionsError
from zapshift_backend.app.db.session import get_db
from zapshift_backend.app.models.enums import UserRole
from zapshift_backend.app.models.user import User


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.patch("/parcels/{parcel_id}/assign")
        async def assign(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        InsufficientPermissionsError: principal has no account or the wrong role
    """
    async def role_checker(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> dict:
        result = await db.execute(select(User).where(User.email == current_user["email"]))
        user = result.scalar_one_or_none()

        if not user or user.role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}",
                details={"email": current_user["email"]},
            )

        return {**current_user, "role": user.role.value, "user_id": user.id}

    return role_checker


require_admin = require_role([UserRole.ADMIN])
require_rider = require_role([UserRole.RIDER])


def verify_ownership(resource_email: str, current_user: dict) -> bool:
    """The principal may act on a resource only if it carries their email."""
    return resource_email is not None and resource_email.lower() == current_user.get("email", "").lower()


class OwnershipGuard:
    """
    Class-based ownership guard.

    Usage:
        ownership_guard = OwnershipGuard()
        ownership_guard.enforce(parcel_data.sender_email, current_user, "parcel")
    """

    def enforce(
        self,
        resource_email: str,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Raise InsufficientPermissionsError unless resource_email belongs to the principal.
        """
        if not verify_ownership(resource_email, current_user):
            raise InsufficientPermissionsError(
                f"Access denied. You do not have permission to access this {resource_name}."
            )
