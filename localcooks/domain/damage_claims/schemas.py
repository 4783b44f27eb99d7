"""Damage claim schemas - Pydantic models for validation"""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

EVIDENCE_TYPES = (
    "photo_before",
    "photo_after",
    "receipt",
    "invoice",
    "video",
    "third_party_report",
    "repair_quote",
)

CLAIM_STATUSES = (
    "draft",
    "submitted",
    "chef_accepted",
    "chef_disputed",
    "under_review",
    "approved",
    "partially_approved",
    "charge_pending",
    "charge_succeeded",
    "charge_failed",
    "resolved",
    "rejected",
    "expired",
)


class DamageClaimCreate(BaseModel):
    bookingType: str
    kitchenBookingId: Optional[int] = None
    storageBookingId: Optional[int] = None
    claimTitle: str = Field(..., min_length=5, max_length=255)
    claimDescription: str = Field(..., min_length=10)
    damageDate: date
    claimedAmountCents: int = Field(..., gt=0)
    damagedItems: list[dict[str, Any]] = []
    submitImmediately: bool = False

    @model_validator(mode="after")
    def check_booking_reference(self):
        if self.bookingType not in ("kitchen", "storage"):
            raise ValueError("bookingType must be 'kitchen' or 'storage'")
        if self.bookingType == "kitchen" and not self.kitchenBookingId:
            raise ValueError("kitchenBookingId is required for kitchen claims")
        if self.bookingType == "storage" and not self.storageBookingId:
            raise ValueError("storageBookingId is required for storage claims")
        return self


class DamageClaimUpdate(BaseModel):
    claimTitle: Optional[str] = Field(None, min_length=5, max_length=255)
    claimDescription: Optional[str] = Field(None, min_length=10)
    damageDate: Optional[date] = None
    claimedAmountCents: Optional[int] = Field(None, gt=0)
    damagedItems: Optional[list[dict[str, Any]]] = None


class EvidenceCreate(BaseModel):
    evidenceType: str
    fileUrl: str = Field(..., min_length=1)
    fileName: Optional[str] = None
    fileSize: Optional[int] = Field(None, ge=0)
    mimeType: Optional[str] = None
    description: Optional[str] = None
    amountCents: Optional[int] = Field(None, ge=0)
    vendorName: Optional[str] = None

    @field_validator("evidenceType")
    @classmethod
    def validate_evidence_type(cls, v):
        if v not in EVIDENCE_TYPES:
            raise ValueError(f"evidenceType must be one of: {', '.join(EVIDENCE_TYPES)}")
        return v


class ChefResponse(BaseModel):
    action: str
    response: str


class AdminDecision(BaseModel):
    decision: str
    approvedAmountCents: Optional[int] = None
    decisionReason: str = Field(..., min_length=1)
    notes: Optional[str] = None


class ClaimRefundRequest(BaseModel):
    amountCents: Optional[int] = None
    reason: str = Field(..., min_length=1)


class ClaimResolveRequest(BaseModel):
    resolutionType: str
    notes: Optional[str] = None


class DamageClaimLimitsUpdate(BaseModel):
    maxClaimAmountCents: Optional[int] = Field(None, gt=0)
    minClaimAmountCents: Optional[int] = Field(None, ge=0)
    maxClaimsPerBooking: Optional[int] = Field(None, ge=1)
    chefResponseDeadlineHours: Optional[int] = Field(None, ge=1)
    claimSubmissionDeadlineDays: Optional[int] = Field(None, ge=1)
    reviewWindowHours: Optional[int] = Field(None, ge=0)
    extendedClaimWindowHours: Optional[int] = Field(None, ge=0)
