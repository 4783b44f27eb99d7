"""Location domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

LICENSE_STATUSES = ("pending", "approved", "rejected")


class LocationCreate(BaseModel):
    """Schema for creating a new location"""

    name: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1)
    notificationEmail: Optional[str] = None
    notificationPhone: Optional[str] = None
    cancellationPolicyHours: Optional[int] = Field(None, ge=0)
    cancellationPolicyMessage: Optional[str] = None
    defaultDailyBookingLimit: Optional[int] = Field(None, ge=1, le=24)
    minimumBookingWindowHours: Optional[int] = Field(None, ge=0)
    timezone: Optional[str] = None

    @field_validator("name", "address")
    @classmethod
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class LocationUpdate(BaseModel):
    """Schema for updating a location; only provided fields change"""

    name: Optional[str] = None
    address: Optional[str] = None
    managerId: Optional[int] = None
    notificationEmail: Optional[str] = None
    notificationPhone: Optional[str] = None
    cancellationPolicyHours: Optional[int] = Field(None, ge=0)
    cancellationPolicyMessage: Optional[str] = None
    defaultDailyBookingLimit: Optional[int] = Field(None, ge=1, le=24)
    minimumBookingWindowHours: Optional[int] = Field(None, ge=0)
    timezone: Optional[str] = None
    logoUrl: Optional[str] = None
    brandImageUrl: Optional[str] = None


class KitchenLicenseUpload(BaseModel):
    kitchenLicenseUrl: str
    kitchenLicenseExpiry: Optional[date] = None


class KitchenLicenseVerification(BaseModel):
    """Admin review of a location's kitchen license"""

    status: str
    feedback: Optional[str] = None
    expiry: Optional[date] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in LICENSE_STATUSES:
            raise ValueError(f"status must be one of {', '.join(LICENSE_STATUSES)}")
        return v


class LocationResponse(BaseModel):
    id: int
    managerId: int
    name: str
    address: str
    notificationEmail: Optional[str] = None
    notificationPhone: Optional[str] = None
    cancellationPolicyHours: int
    cancellationPolicyMessage: str
    defaultDailyBookingLimit: int
    minimumBookingWindowHours: int
    timezone: str
    logoUrl: Optional[str] = None
    brandImageUrl: Optional[str] = None
    kitchenLicenseUrl: Optional[str] = None
    kitchenLicenseStatus: str
    kitchenLicenseApprovedBy: Optional[int] = None
    kitchenLicenseApprovedAt: Optional[datetime] = None
    kitchenLicenseFeedback: Optional[str] = None
    kitchenLicenseExpiry: Optional[date] = None
    createdAt: Optional[datetime] = None


class LocationRequirementsUpdate(BaseModel):
    """Manager-configured applicant requirements; omitted fields keep their value"""

    requireFirstName: Optional[bool] = None
    requireLastName: Optional[bool] = None
    requireEmail: Optional[bool] = None
    requirePhone: Optional[bool] = None
    requireBusinessName: Optional[bool] = None
    requireBusinessType: Optional[bool] = None
    requireExperience: Optional[bool] = None
    requireBusinessDescription: Optional[bool] = None
    requireFoodHandlerCert: Optional[bool] = None
    requireFoodHandlerExpiry: Optional[bool] = None
    requireUsageFrequency: Optional[bool] = None
    requireSessionDuration: Optional[bool] = None
    requireTermsAgree: Optional[bool] = None
    requireAccuracyAgree: Optional[bool] = None
    customFields: Optional[list[dict[str, Any]]] = None
    tier1_years_experience_required: Optional[bool] = None
    tier1_years_experience_minimum: Optional[int] = Field(None, ge=0)
    tier1_custom_fields: Optional[list[dict[str, Any]]] = None
    tier2_food_establishment_cert_required: Optional[bool] = None
    tier2_food_establishment_expiry_required: Optional[bool] = None
    tier2_insurance_document_required: Optional[bool] = None
    tier2_insurance_minimum_amount: Optional[int] = Field(None, ge=0)
    tier2_kitchen_experience_required: Optional[bool] = None
    tier2_allergen_plan_required: Optional[bool] = None
    tier2_supplier_list_required: Optional[bool] = None
    tier2_quality_control_required: Optional[bool] = None
    tier2_traceability_system_required: Optional[bool] = None
    tier2_custom_fields: Optional[list[dict[str, Any]]] = None
    floor_plans_url: Optional[str] = None
    ventilation_specs: Optional[str] = None
    ventilation_specs_url: Optional[str] = None
    equipment_list: Optional[list[Any]] = None
    materials_description: Optional[str] = None
