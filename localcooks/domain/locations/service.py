"""Location service - Business logic for kitchen locations"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import notify, send_kitchen_license_status_email
from ...models import Location, LocationRequirements, User
from .repository import LocationRepository
from .schemas import LocationCreate, LocationRequirementsUpdate, LocationUpdate

logger = logging.getLogger(__name__)

MAX_LOCATIONS_PER_MANAGER = 10

# Request field -> column for the applicant requirement flags
REQUIREMENT_FLAG_COLUMNS = {
    "requireFirstName": "require_first_name",
    "requireLastName": "require_last_name",
    "requireEmail": "require_email",
    "requirePhone": "require_phone",
    "requireBusinessName": "require_business_name",
    "requireBusinessType": "require_business_type",
    "requireExperience": "require_experience",
    "requireBusinessDescription": "require_business_description",
    "requireFoodHandlerCert": "require_food_handler_cert",
    "requireFoodHandlerExpiry": "require_food_handler_expiry",
    "requireUsageFrequency": "require_usage_frequency",
    "requireSessionDuration": "require_session_duration",
    "requireTermsAgree": "require_terms_agree",
    "requireAccuracyAgree": "require_accuracy_agree",
    "customFields": "custom_fields",
}

TIER_COLUMNS = (
    "tier1_years_experience_required",
    "tier1_years_experience_minimum",
    "tier1_custom_fields",
    "tier2_food_establishment_cert_required",
    "tier2_food_establishment_expiry_required",
    "tier2_insurance_document_required",
    "tier2_insurance_minimum_amount",
    "tier2_kitchen_experience_required",
    "tier2_allergen_plan_required",
    "tier2_supplier_list_required",
    "tier2_quality_control_required",
    "tier2_traceability_system_required",
    "tier2_custom_fields",
    "floor_plans_url",
    "ventilation_specs",
    "ventilation_specs_url",
    "equipment_list",
    "materials_description",
)

LIST_COLUMNS = ("custom_fields", "tier1_custom_fields", "tier2_custom_fields", "equipment_list")


def default_requirements(location_id: int) -> dict:
    """Requirements applied to a location whose manager never configured any"""
    return {
        "id": -1,
        "locationId": location_id,
        "requireFirstName": True,
        "requireLastName": True,
        "requireEmail": True,
        "requirePhone": True,
        "requireBusinessName": True,
        "requireBusinessType": True,
        "requireExperience": True,
        "requireBusinessDescription": False,
        "requireFoodHandlerCert": True,
        "requireFoodHandlerExpiry": True,
        "requireUsageFrequency": True,
        "requireSessionDuration": True,
        "requireTermsAgree": True,
        "requireAccuracyAgree": True,
        "customFields": [],
        "tier1_years_experience_required": False,
        "tier1_years_experience_minimum": 0,
        "tier1_custom_fields": [],
        "tier2_food_establishment_cert_required": False,
        "tier2_food_establishment_expiry_required": False,
        "tier2_insurance_document_required": False,
        "tier2_insurance_minimum_amount": 0,
        "tier2_kitchen_experience_required": False,
        "tier2_allergen_plan_required": False,
        "tier2_supplier_list_required": False,
        "tier2_quality_control_required": False,
        "tier2_traceability_system_required": False,
        "tier2_custom_fields": [],
        "floor_plans_url": "",
        "ventilation_specs": "",
        "ventilation_specs_url": "",
        "equipment_list": [],
        "materials_description": "",
    }


def requirements_to_dict(requirements: LocationRequirements) -> dict:
    data = {"id": requirements.id, "locationId": requirements.location_id}
    for field, column in REQUIREMENT_FLAG_COLUMNS.items():
        data[field] = getattr(requirements, column)
    for column in TIER_COLUMNS:
        data[column] = getattr(requirements, column)
    # List fields are always lists, even for rows written before they existed
    data["customFields"] = data["customFields"] if isinstance(data["customFields"], list) else []
    for column in LIST_COLUMNS[1:]:
        data[column] = data[column] if isinstance(data[column], list) else []
    return data


def location_to_response(location: Location) -> dict:
    return {
        "id": location.id,
        "managerId": location.manager_id,
        "name": location.name,
        "address": location.address,
        "notificationEmail": location.notification_email,
        "notificationPhone": location.notification_phone,
        "cancellationPolicyHours": location.cancellation_policy_hours,
        "cancellationPolicyMessage": location.cancellation_policy_message,
        "defaultDailyBookingLimit": location.default_daily_booking_limit,
        "minimumBookingWindowHours": location.minimum_booking_window_hours,
        "timezone": location.timezone,
        "logoUrl": location.logo_url,
        "brandImageUrl": location.brand_image_url,
        "kitchenLicenseUrl": location.kitchen_license_url,
        "kitchenLicenseStatus": location.kitchen_license_status,
        "kitchenLicenseApprovedBy": location.kitchen_license_approved_by,
        "kitchenLicenseApprovedAt": location.kitchen_license_approved_at,
        "kitchenLicenseFeedback": location.kitchen_license_feedback,
        "kitchenLicenseExpiry": location.kitchen_license_expiry,
        "createdAt": location.created_at,
    }


class LocationService:
    """Service layer for location business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = LocationRepository()

    def get_location_by_id(self, location_id: int) -> Location:
        location = self.repo.get_by_id(self.db, location_id)
        if not location:
            raise HTTPException(status_code=404, detail="Location not found")
        return location

    def get_owned_location(self, location_id: int, manager: User) -> Location:
        """Location the manager is allowed to act on"""
        location = self.get_location_by_id(location_id)
        if location.manager_id != manager.id:
            logger.warning(f"⚠️ Manager {manager.id} denied access to location {location_id}")
            raise HTTPException(status_code=403, detail="Access denied to this location")
        return location

    def get_locations_by_manager(self, manager: User) -> list[Location]:
        return self.repo.get_by_manager(self.db, manager.id)

    def get_all_locations(self) -> list[Location]:
        return self.repo.get_all(self.db)

    def create_location(self, data: LocationCreate, manager: User) -> Location:
        logger.info(f"📥 Creating location '{data.name}' for manager {manager.id}")
        if self.repo.count_by_manager(self.db, manager.id) >= MAX_LOCATIONS_PER_MANAGER:
            raise HTTPException(
                status_code=400,
                detail=f"Maximum of {MAX_LOCATIONS_PER_MANAGER} locations per manager reached",
            )

        values = {
            "manager_id": manager.id,
            "name": data.name,
            "address": data.address,
            "notification_email": data.notificationEmail or manager.email,
            "notification_phone": data.notificationPhone,
        }
        optional = {
            "cancellation_policy_hours": data.cancellationPolicyHours,
            "cancellation_policy_message": data.cancellationPolicyMessage,
            "default_daily_booking_limit": data.defaultDailyBookingLimit,
            "minimum_booking_window_hours": data.minimumBookingWindowHours,
            "timezone": data.timezone,
        }
        values.update({k: v for k, v in optional.items() if v is not None})

        location = self.repo.create(self.db, **values)
        logger.info(f"✅ Location {location.id} created")
        return location

    def update_location(self, location_id: int, data: LocationUpdate, manager: User) -> Location:
        location = self.get_owned_location(location_id, manager)

        if data.managerId is not None and data.managerId != location.manager_id:
            raise HTTPException(status_code=400, detail="Cannot change the manager of a location")

        field_map = {
            "name": "name",
            "address": "address",
            "notificationEmail": "notification_email",
            "notificationPhone": "notification_phone",
            "cancellationPolicyHours": "cancellation_policy_hours",
            "cancellationPolicyMessage": "cancellation_policy_message",
            "defaultDailyBookingLimit": "default_daily_booking_limit",
            "minimumBookingWindowHours": "minimum_booking_window_hours",
            "timezone": "timezone",
            "logoUrl": "logo_url",
            "brandImageUrl": "brand_image_url",
        }
        updates = {}
        for field, column in field_map.items():
            value = getattr(data, field)
            if value is not None:
                updates[column] = value.strip() if isinstance(value, str) and column in ("name", "address") else value

        if "name" in updates and not updates["name"]:
            raise HTTPException(status_code=400, detail="Location name cannot be empty")

        return self.repo.update(self.db, location, **updates)

    def delete_location(self, location_id: int, manager: User) -> dict:
        location = self.get_owned_location(location_id, manager)
        kitchen_count = self.repo.count_kitchens(self.db, location.id)
        if kitchen_count:
            raise HTTPException(
                status_code=409,
                detail=f"Cannot delete location: It has {kitchen_count} kitchen(s)",
            )
        self.repo.delete(self.db, location)
        return {"message": "Location deleted"}

    # ========================================================================
    # KITCHEN LICENSE
    # ========================================================================

    def update_kitchen_license(self, location_id: int, license_url: str, expiry, manager: User) -> Location:
        """A new license upload goes back to pending review"""
        location = self.get_owned_location(location_id, manager)
        return self.repo.update(
            self.db,
            location,
            kitchen_license_url=license_url,
            kitchen_license_expiry=expiry,
            kitchen_license_status="pending",
            kitchen_license_feedback=None,
            kitchen_license_approved_by=None,
            kitchen_license_approved_at=None,
        )

    async def verify_kitchen_license(
        self,
        location_id: int,
        status: str,
        feedback: Optional[str],
        expiry,
        approved_by: Optional[int],
    ) -> Location:
        location = self.get_location_by_id(location_id)

        if status not in ("pending", "approved", "rejected"):
            raise HTTPException(status_code=400, detail="Invalid license status")

        updates = {"kitchen_license_status": status, "kitchen_license_feedback": feedback}
        if status == "approved":
            expiry = expiry or location.kitchen_license_expiry
            if not expiry:
                raise HTTPException(status_code=400, detail="License expiry date is required for approval")
            if not approved_by:
                raise HTTPException(status_code=400, detail="Approver is required for approval")
            updates.update(
                kitchen_license_expiry=expiry,
                kitchen_license_approved_by=approved_by,
                kitchen_license_approved_at=datetime.utcnow(),
            )

        location = self.repo.update(self.db, location, **updates)
        logger.info(f"✅ Kitchen license for location {location.id} set to {status}")

        manager = self.repo.get_user(self.db, location.manager_id)
        await notify(
            "kitchen_license_status",
            send_kitchen_license_status_email,
            to=location.notification_email or (manager.email if manager else None),
            manager_name=(manager.full_name or manager.username or "there") if manager else "there",
            location_name=location.name,
            status=status,
            feedback=feedback,
        )
        return location

    # ========================================================================
    # REQUIREMENTS
    # ========================================================================

    def get_location_requirements_with_defaults(self, location_id: int) -> dict:
        requirements = self.repo.get_requirements(self.db, location_id)
        if requirements:
            return requirements_to_dict(requirements)
        return default_requirements(location_id)

    def upsert_location_requirements(
        self, location_id: int, data: LocationRequirementsUpdate, manager: User
    ) -> dict:
        self.get_owned_location(location_id, manager)

        provided = data.model_dump(exclude_unset=True)
        fields = {}
        for field, value in provided.items():
            if field in REQUIREMENT_FLAG_COLUMNS:
                fields[REQUIREMENT_FLAG_COLUMNS[field]] = value
            elif field in TIER_COLUMNS:
                fields[field] = value
        for column in LIST_COLUMNS:
            if column in fields and fields[column] is None:
                fields[column] = []

        # New rows start from the defaults, not the column defaults
        if self.repo.get_requirements(self.db, location_id) is None:
            base = default_requirements(location_id)
            seeded = {REQUIREMENT_FLAG_COLUMNS[k]: v for k, v in base.items() if k in REQUIREMENT_FLAG_COLUMNS}
            seeded.update({k: v for k, v in base.items() if k in TIER_COLUMNS})
            seeded.update(fields)
            fields = seeded

        requirements = self.repo.upsert_requirements(self.db, location_id, **fields)
        logger.info(f"✅ Requirements saved for location {location_id}")
        return requirements_to_dict(requirements)
