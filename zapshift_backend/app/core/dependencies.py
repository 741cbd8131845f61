"""
FastAPI dependencies.

Authentication of the bearer token, plus construction of the
per-request lifecycle services from injected store handles.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from zapshift_backend.app.core.config import settings
from zapshift_backend.app.core.exceptions import AuthenticationError
from zapshift_backend.app.core.jwt import decode_access_token
from zapshift_backend.app.core.redis_client import get_redis
from zapshift_backend.app.db.session import get_db
from zapshift_backend.app.domain.parcels.state_machine import ParcelStateMachine
from zapshift_backend.app.domain.payments.reconciler import PaymentReconciler
from zapshift_backend.app.services.payment_gateway import PaymentGateway, StripeCheckoutGateway
from zapshift_backend.app.services.reconcile_lock import ReconcileLock
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager
from zapshift_backend.app.services.tracking_ledger import TrackingLedger

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Validates the token signature and expiry and requires an email claim.

    Returns:
        Decoded token payload (includes: sub, email)

    Raises:
        AuthenticationError: invalid, expired or claimless token
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    email = payload.get("email") or payload.get("sub")
    if not email:
        raise AuthenticationError("Invalid token payload")

    payload["email"] = email
    return payload


def get_tracking_ledger(db: AsyncSession = Depends(get_db)) -> TrackingLedger:
    return TrackingLedger(db)


def get_rider_manager(db: AsyncSession = Depends(get_db)) -> RiderAssignmentManager:
    return RiderAssignmentManager(db)


def get_state_machine(db: AsyncSession = Depends(get_db)) -> ParcelStateMachine:
    return ParcelStateMachine(db, TrackingLedger(db), RiderAssignmentManager(db))


def get_payment_gateway() -> PaymentGateway:
    return StripeCheckoutGateway()


async def get_reconcile_lock(redis=Depends(get_redis)) -> ReconcileLock:
    return ReconcileLock(
        redis,
        ttl_seconds=settings.reconcile_lock_ttl_seconds,
        enabled=settings.reconcile_lock_enabled,
    )


def get_reconciler(
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    lock: ReconcileLock = Depends(get_reconcile_lock),
) -> PaymentReconciler:
    state_machine = ParcelStateMachine(db, TrackingLedger(db), RiderAssignmentManager(db))
    return PaymentReconciler(db, state_machine, gateway, lock)
