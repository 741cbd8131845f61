"""
Parcel Lifecycle API Endpoints.

Intake, rider assignment, rider status updates and administrative removal.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from zapshift_backend.app.db.session import get_db
from zapshift_backend.app.models.parcel import Parcel
from zapshift_backend.app.models.parcel_enums import ParcelStatus
from zapshift_backend.app.schemas.parcel import (
    ParcelCreate,
    ParcelListResponse,
    ParcelResponse,
    ParcelStatusUpdate,
    RiderAssignment,
)
from zapshift_backend.app.core.dependencies import get_current_user, get_rider_manager, get_state_machine
from zapshift_backend.app.core.guards import require_admin, require_rider, OwnershipGuard
from zapshift_backend.app.domain.parcels.state_machine import ParcelStateMachine
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager

router = APIRouter(prefix="/parcels", tags=["Parcels"])
ownership_guard = OwnershipGuard()


async def _require_acting_rider(rider_id: int, current_user: dict, riders: RiderAssignmentManager) -> None:
    """The rider named in the request must be the authenticated principal."""
    rider = await riders.get(rider_id)
    ownership_guard.enforce(rider.email, current_user, "rider assignment")


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(get_current_user),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    """
    Intake a new parcel (authenticated sender only).

    The parcel starts UNPAID with a freshly issued tracking id.
    """
    ownership_guard.enforce(parcel_data.sender_email, current_user, "parcel")

    parcel = await state_machine.create(parcel_data.model_dump())
    return ParcelResponse.model_validate(parcel)


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    email: Optional[str] = Query(None, description="Sender email"),
    delivery_status: Optional[str] = Query(None, description="Delivery status"),
    db: AsyncSession = Depends(get_db)
):
    """List parcels, newest first."""
    query = select(Parcel).order_by(Parcel.created_at.desc(), Parcel.id.desc())

    if email:
        query = query.where(Parcel.sender_email == email)

    if delivery_status:
        query = query.where(Parcel.delivery_status == delivery_status)

    result = await db.execute(query)
    parcels = result.scalars().all()

    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=len(parcels),
    )


@router.get("/rider", response_model=ParcelListResponse)
async def list_rider_parcels(
    rider_email: Optional[str] = Query(None, description="Assigned rider email"),
    delivery_status: Optional[str] = Query(None, description="'delivered' for history, anything else for open work"),
    db: AsyncSession = Depends(get_db)
):
    """
    Parcels carried by a rider.

    Unless delivered parcels are asked for explicitly, only parcels that
    are not yet delivered are returned.
    """
    query = select(Parcel).order_by(Parcel.created_at.desc(), Parcel.id.desc())

    if rider_email:
        query = query.where(Parcel.rider_email == rider_email)

    if delivery_status == ParcelStatus.DELIVERED.value:
        query = query.where(Parcel.delivery_status == ParcelStatus.DELIVERED.value)
    else:
        query = query.where(Parcel.delivery_status != ParcelStatus.DELIVERED.value)

    result = await db.execute(query)
    parcels = result.scalars().all()

    return ParcelListResponse(
        parcels=[ParcelResponse.model_validate(p) for p in parcels],
        total=len(parcels),
    )


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    parcel = await state_machine.get(parcel_id)
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/assign", response_model=ParcelResponse)
async def assign_rider(
    parcel_id: int = Path(..., description="Parcel ID"),
    assignment: RiderAssignment = ...,
    current_user: dict = Depends(require_admin),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    """
    Assign an approved, available rider (Admin only).

    Parcel moves to rider-assigned and the rider to in-delivery together.
    """
    parcel = await state_machine.assign_rider(parcel_id, assignment.rider_id)
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    parcel_id: int = Path(..., description="Parcel ID"),
    update: ParcelStatusUpdate = ...,
    current_user: dict = Depends(require_rider),
    riders: RiderAssignmentManager = Depends(get_rider_manager),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    """Rider reports progress (e.g. rider-arriving, delivered)."""
    await _require_acting_rider(update.rider_id, current_user, riders)
    parcel = await state_machine.update_status(parcel_id, update.delivery_status, update.rider_id)
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}/reject", response_model=ParcelResponse)
async def reject_assignment(
    parcel_id: int = Path(..., description="Parcel ID"),
    update: ParcelStatusUpdate = ...,
    current_user: dict = Depends(require_rider),
    riders: RiderAssignmentManager = Depends(get_rider_manager),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    """Rider declines the parcel; status reverts to the supplied value."""
    await _require_acting_rider(update.rider_id, current_user, riders)
    parcel = await state_machine.reject_assignment(parcel_id, update.delivery_status, update.rider_id)
    return ParcelResponse.model_validate(parcel)


@router.delete("/{parcel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_admin),
    state_machine: ParcelStateMachine = Depends(get_state_machine),
):
    """
    Administrative removal (Admin only).

    A rider still carrying the parcel is released. Tracking events for the
    parcel are kept.
    """
    await state_machine.remove(parcel_id, actor_email=current_user["email"])
