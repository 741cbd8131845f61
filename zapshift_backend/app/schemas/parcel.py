"""
Parcel Pydantic schemas.

Defines request and response models for the parcel lifecycle.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, List
from zapshift_backend.app.models.parcel_enums import PaymentStatus


class ParcelCreate(BaseModel):
    """Schema for parcel intake."""
    parcel_name: str = Field(..., min_length=1, max_length=200, description="What is being sent")
    parcel_type: Optional[str] = Field(None, max_length=50, description="document / non-document")
    weight_kg: Optional[float] = Field(None, gt=0, description="Weight in kilograms")
    cost: float = Field(..., ge=0, description="Delivery cost")

    sender_name: str = Field(..., min_length=1, max_length=100)
    sender_email: EmailStr = Field(..., description="Must match the authenticated principal")
    sender_phone: Optional[str] = Field(None, max_length=30)
    sender_district: Optional[str] = Field(None, max_length=100)
    sender_address: Optional[str] = Field(None, max_length=500)

    receiver_name: str = Field(..., min_length=1, max_length=100)
    receiver_email: Optional[EmailStr] = None
    receiver_phone: Optional[str] = Field(None, max_length=30)
    receiver_district: Optional[str] = Field(None, max_length=100)
    receiver_address: str = Field(..., min_length=1, max_length=500)


class RiderAssignment(BaseModel):
    """Schema for assigning a rider to a parcel."""
    rider_id: int


class ParcelStatusUpdate(BaseModel):
    """Schema for a rider-driven status change or rejection."""
    delivery_status: str = Field(..., min_length=1, max_length=50)
    rider_id: int


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    tracking_id: str
    parcel_name: str
    parcel_type: Optional[str]
    weight_kg: Optional[float]
    cost: float
    sender_name: str
    sender_email: str
    sender_phone: Optional[str]
    sender_district: Optional[str]
    sender_address: Optional[str]
    receiver_name: str
    receiver_email: Optional[str]
    receiver_phone: Optional[str]
    receiver_district: Optional[str]
    receiver_address: str
    delivery_status: str
    payment_status: PaymentStatus
    rider_id: Optional[int]
    rider_name: Optional[str]
    rider_email: Optional[str]
    rider_phone: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParcelListResponse(BaseModel):
    """Schema for parcel list."""
    parcels: List[ParcelResponse]
    total: int
