"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from zapshift_backend.app.api.v1.endpoints import parcels, payments, riders, trackings

router = APIRouter()

# Parcel lifecycle
router.include_router(parcels.router)

# Payment reconciliation
router.include_router(payments.router)

# Rider registration and approval
router.include_router(riders.router)

# Tracking ledger
router.include_router(trackings.router)
