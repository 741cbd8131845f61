"""
Database seeding script for initial users.

Creates an ADMIN account so riders can be approved and parcels assigned.
Run this script after database is set up but before first use.

Usage:
    python -m zapshift_backend.seed_users admin@example.com
"""

import asyncio
import logging
import sys

from sqlalchemy import select

from zapshift_backend.app.core.jwt import create_access_token
from zapshift_backend.app.core.observability import configure_logging
from zapshift_backend.app.db.session import AsyncSessionLocal, engine, Base
from zapshift_backend.app.models.user import User
from zapshift_backend.app.models.enums import UserRole

logger = logging.getLogger("zapshift.seed")


async def seed_admin(email: str) -> User:
    """
    Create (or promote) the admin account for email.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user and user.role == UserRole.ADMIN:
            logger.info("Admin %s already exists", email)
            return user

        if user:
            user.role = UserRole.ADMIN
            logger.info("Promoted %s to admin", email)
        else:
            user = User(email=email, display_name="Administrator", role=UserRole.ADMIN)
            db.add(user)
            logger.info("Created admin %s", email)

        await db.commit()
        await db.refresh(user)
        return user


async def main(email: str):
    configure_logging()
    user = await seed_admin(email)
    token = create_access_token({"sub": user.email, "email": user.email})
    logger.info("Development token for %s: %s", user.email, token)
    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: python -m zapshift_backend.seed_users <admin-email>")
        sys.exit(1)
    asyncio.run(main(sys.argv[1]))
