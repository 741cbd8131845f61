"""
Tracking API Endpoints.
"""

from fastapi import APIRouter, Depends, Path

from zapshift_backend.app.core.dependencies import get_tracking_ledger
from zapshift_backend.app.schemas.tracking import TrackingEventResponse, TrackingTimelineResponse
from zapshift_backend.app.services.tracking_ledger import TrackingLedger

router = APIRouter(prefix="/trackings", tags=["Tracking"])


@router.get("/{tracking_id}/logs", response_model=TrackingTimelineResponse)
async def tracking_logs(
    tracking_id: str = Path(..., description="Public tracking id"),
    ledger: TrackingLedger = Depends(get_tracking_ledger),
):
    """Timeline for a tracking id, oldest first. Unknown ids give an empty timeline."""
    events = await ledger.list_by_tracking(tracking_id)
    return TrackingTimelineResponse(
        tracking_id=tracking_id,
        events=[TrackingEventResponse.model_validate(e) for e in events],
    )
