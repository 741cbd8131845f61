"""
Rider API Endpoints.

Self-registration, listing, administrative approval and removal.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, status

from zapshift_backend.app.core.dependencies import get_rider_manager
from zapshift_backend.app.core.guards import require_admin
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus
from zapshift_backend.app.schemas.rider import RiderApproval, RiderCreate, RiderListResponse, RiderResponse
from zapshift_backend.app.services.rider_assignment import RiderAssignmentManager

router = APIRouter(prefix="/riders", tags=["Riders"])


@router.post("", response_model=RiderResponse, status_code=status.HTTP_201_CREATED)
async def register_rider(
    rider_data: RiderCreate,
    riders: RiderAssignmentManager = Depends(get_rider_manager),
):
    """Apply to become a rider. Applications start PENDING."""
    rider = await riders.register(rider_data.model_dump())
    return RiderResponse.model_validate(rider)


@router.get("", response_model=RiderListResponse)
async def list_riders(
    status_filter: Optional[RiderStatus] = Query(None, alias="status"),
    district: Optional[str] = Query(None),
    work_status: Optional[WorkStatus] = Query(None),
    riders: RiderAssignmentManager = Depends(get_rider_manager),
):
    result = await riders.list_riders(status=status_filter, district=district, work_status=work_status)
    return RiderListResponse(
        riders=[RiderResponse.model_validate(r) for r in result],
        total=len(result),
    )


@router.patch("/{rider_id}/approval", response_model=RiderResponse)
async def decide_rider(
    rider_id: int = Path(..., description="Rider ID"),
    decision: RiderApproval = ...,
    current_user: dict = Depends(require_admin),
    riders: RiderAssignmentManager = Depends(get_rider_manager),
):
    """
    Approve or reject a rider application (Admin only).

    Approval promotes the matching user account to the rider role.
    """
    rider = await riders.approve(rider_id, decision.status, actor_email=current_user["email"])
    return RiderResponse.model_validate(rider)


@router.delete("/{rider_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_rider(
    rider_id: int = Path(..., description="Rider ID"),
    current_user: dict = Depends(require_admin),
    riders: RiderAssignmentManager = Depends(get_rider_manager),
):
    """Remove a rider (Admin only). Riders in delivery cannot be removed."""
    await riders.remove(rider_id, actor_email=current_user["email"])
