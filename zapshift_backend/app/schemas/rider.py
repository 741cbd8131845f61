"""
Rider Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, List
from zapshift_backend.app.models.rider_enums import RiderStatus, WorkStatus


class RiderCreate(BaseModel):
    """Schema for rider self-registration."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=30)
    region: Optional[str] = Field(None, max_length=100)
    district: Optional[str] = Field(None, max_length=100)


class RiderApproval(BaseModel):
    """Schema for an administrator's decision on a rider application."""
    status: RiderStatus


class RiderResponse(BaseModel):
    """Schema for rider response."""
    id: int
    name: str
    email: str
    phone: Optional[str]
    region: Optional[str]
    district: Optional[str]
    status: RiderStatus
    work_status: WorkStatus
    created_at: datetime

    class Config:
        from_attributes = True


class RiderListResponse(BaseModel):
    riders: List[RiderResponse]
    total: int
