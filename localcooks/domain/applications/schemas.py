"""Chef kitchen application schemas - Pydantic models for validation"""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

APPLICATION_STATUSES = ("inReview", "approved", "rejected", "cancelled")
YES_NO_ANSWERS = ("yes", "no", "notSure")
KITCHEN_PREFERENCES = ("commercial", "home", "notSure")


class ApplicationCreate(BaseModel):
    """Schema for a chef applying to use a location's kitchens"""

    locationId: int
    fullName: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = None
    kitchenPreference: Optional[str] = None
    businessName: Optional[str] = None
    businessType: Optional[str] = None
    businessDescription: Optional[str] = None
    cookingExperience: Optional[str] = None
    usageFrequency: Optional[str] = None
    sessionDuration: Optional[str] = None
    foodSafetyLicense: Optional[str] = None
    foodSafetyLicenseUrl: Optional[str] = None
    foodSafetyLicenseExpiry: Optional[date] = None
    foodEstablishmentCert: Optional[str] = None
    foodEstablishmentCertUrl: Optional[str] = None
    foodEstablishmentCertExpiry: Optional[date] = None
    customFieldsData: dict[str, Any] = {}
    termsAgree: bool = False
    accuracyAgree: bool = False

    @field_validator("kitchenPreference")
    @classmethod
    def validate_kitchen_preference(cls, v):
        if v is not None and v not in KITCHEN_PREFERENCES:
            raise ValueError(f"kitchenPreference must be one of: {', '.join(KITCHEN_PREFERENCES)}")
        return v

    @field_validator("foodSafetyLicense", "foodEstablishmentCert")
    @classmethod
    def validate_yes_no(cls, v):
        if v is not None and v not in YES_NO_ANSWERS:
            raise ValueError(f"must be one of: {', '.join(YES_NO_ANSWERS)}")
        return v


class ApplicationStatusUpdate(BaseModel):
    status: str
    feedback: Optional[str] = None


class ApplicationDocumentsUpdate(BaseModel):
    foodSafetyLicenseUrl: Optional[str] = None
    foodSafetyLicenseExpiry: Optional[date] = None
    foodEstablishmentCertUrl: Optional[str] = None
    foodEstablishmentCertExpiry: Optional[date] = None


class ApplicationTierUpdate(BaseModel):
    tier: int = Field(..., ge=1, le=4)
    tierData: Optional[dict[str, Any]] = None
