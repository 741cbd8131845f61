"""
Tracking event Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import List


class TrackingEventResponse(BaseModel):
    id: int
    tracking_id: str
    status: str
    details: str
    created_at: datetime

    class Config:
        from_attributes = True


class TrackingTimelineResponse(BaseModel):
    tracking_id: str
    events: List[TrackingEventResponse]
