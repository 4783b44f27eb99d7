"""Booking domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
ITEM_ACTIONS = ("confirmed", "cancelled")

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class StorageItemRequest(BaseModel):
    storageListingId: int
    startDate: datetime
    endDate: datetime


class EquipmentItemRequest(BaseModel):
    equipmentListingId: int


class KitchenBookingCreate(BaseModel):
    """Schema for a chef booking a kitchen session"""

    kitchenId: int
    bookingDate: date
    startTime: str = Field(..., pattern=TIME_PATTERN)
    endTime: str = Field(..., pattern=TIME_PATTERN)
    specialNotes: Optional[str] = None
    paymentMethodId: str = Field(..., min_length=1)
    storageItems: list[StorageItemRequest] = []
    equipmentItems: list[EquipmentItemRequest] = []


class ItemAction(BaseModel):
    id: int
    action: str

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        if v not in ITEM_ACTIONS:
            raise ValueError("action must be 'confirmed' or 'cancelled'")
        return v


class BookingStatusUpdate(BaseModel):
    """
    Manager decision on a booking.
    Add-ons without an explicit action follow the kitchen status.
    """

    status: str
    storageActions: Optional[list[ItemAction]] = None
    equipmentActions: Optional[list[ItemAction]] = None
    refundOnCancel: bool = False
    customRefundAmount: Optional[int] = Field(None, ge=0, description="Cents")


class BookingResponse(BaseModel):
    id: int
    chefId: Optional[int] = None
    kitchenId: int
    bookingDate: date
    startTime: str
    endTime: str
    status: str
    totalPrice: Optional[int] = None
    hourlyRate: Optional[int] = None
    durationHours: Optional[float] = None
    serviceFee: int = 0
    currency: str
    paymentStatus: str
    paymentIntentId: Optional[str] = None
    specialNotes: Optional[str] = None
    storageItems: list[dict] = []
    equipmentItems: list[dict] = []
    createdAt: Optional[datetime] = None
