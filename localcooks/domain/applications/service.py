"""
Chef application service - Applying to a location and moving through tiers

A chef applies once per location. Submitting again replaces the answers and
puts the application back in review. Booking is unlocked once the manager
has approved the application and walked it to tier 3.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import notify, send_application_status_email, send_application_submitted_email
from ...models import ChefKitchenApplication, User
from ..locations.service import default_requirements, requirements_to_dict
from .repository import ApplicationRepository
from .schemas import APPLICATION_STATUSES, ApplicationCreate, ApplicationDocumentsUpdate

logger = logging.getLogger(__name__)

BOOKABLE_TIER = 3

TIER_TIMESTAMP_COLUMNS = {
    1: "tier1_completed_at",
    2: "tier2_completed_at",
    3: "tier3_submitted_at",
    4: "tier4_completed_at",
}

# requirement flag -> (request field, label shown to the chef)
REQUIRED_FIELD_CHECKS = (
    ("requireEmail", "email", "Email"),
    ("requirePhone", "phone", "Phone number"),
    ("requireBusinessName", "businessName", "Business name"),
    ("requireBusinessType", "businessType", "Business type"),
    ("requireExperience", "cookingExperience", "Cooking experience"),
    ("requireBusinessDescription", "businessDescription", "Business description"),
    ("requireUsageFrequency", "usageFrequency", "Usage frequency"),
    ("requireSessionDuration", "sessionDuration", "Session duration"),
)

DOCUMENT_COLUMNS = {
    "foodSafetyLicenseUrl": "food_safety_license_url",
    "foodSafetyLicenseExpiry": "food_safety_license_expiry",
    "foodEstablishmentCertUrl": "food_establishment_cert_url",
    "foodEstablishmentCertExpiry": "food_establishment_cert_expiry",
}


def application_to_response(a: ChefKitchenApplication) -> dict:
    return {
        "id": a.id,
        "chefId": a.chef_id,
        "locationId": a.location_id,
        "locationName": a.location.name if a.location else None,
        "fullName": a.full_name,
        "email": a.email,
        "phone": a.phone,
        "kitchenPreference": a.kitchen_preference,
        "businessName": a.business_name,
        "businessType": a.business_type,
        "businessDescription": a.business_description,
        "cookingExperience": a.cooking_experience,
        "usageFrequency": a.usage_frequency,
        "sessionDuration": a.session_duration,
        "foodSafetyLicense": a.food_safety_license,
        "foodSafetyLicenseUrl": a.food_safety_license_url,
        "foodSafetyLicenseExpiry": a.food_safety_license_expiry,
        "foodEstablishmentCert": a.food_establishment_cert,
        "foodEstablishmentCertUrl": a.food_establishment_cert_url,
        "foodEstablishmentCertExpiry": a.food_establishment_cert_expiry,
        "customFieldsData": a.custom_fields_data or {},
        "status": a.status,
        "feedback": a.feedback,
        "reviewedBy": a.reviewed_by,
        "reviewedAt": a.reviewed_at,
        "currentTier": a.current_tier,
        "tier1CompletedAt": a.tier1_completed_at,
        "tier2CompletedAt": a.tier2_completed_at,
        "tier3SubmittedAt": a.tier3_submitted_at,
        "tier4CompletedAt": a.tier4_completed_at,
        "tierData": a.tier_data or {},
        "createdAt": a.created_at,
        "updatedAt": a.updated_at,
    }


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def find_missing_requirements(data: ApplicationCreate, requirements: dict) -> list[str]:
    """Labels of the fields the location asks for that the application left empty"""
    missing = []
    if (requirements.get("requireFirstName") or requirements.get("requireLastName")) and _blank(data.fullName):
        missing.append("Full name")
    for flag, field, label in REQUIRED_FIELD_CHECKS:
        if requirements.get(flag) and _blank(getattr(data, field)):
            missing.append(label)

    if requirements.get("requireFoodHandlerCert"):
        if _blank(data.foodSafetyLicense):
            missing.append("Food handler certificate")
        elif data.foodSafetyLicense == "yes" and _blank(data.foodSafetyLicenseUrl):
            missing.append("Food handler certificate document")
    if (
        requirements.get("requireFoodHandlerExpiry")
        and data.foodSafetyLicense == "yes"
        and data.foodSafetyLicenseExpiry is None
    ):
        missing.append("Food handler certificate expiry date")

    if requirements.get("requireTermsAgree") and not data.termsAgree:
        missing.append("Agreement to the terms")
    if requirements.get("requireAccuracyAgree") and not data.accuracyAgree:
        missing.append("Confirmation that the information is accurate")

    for field in requirements.get("customFields") or []:
        if not isinstance(field, dict) or not field.get("required"):
            continue
        if _blank(data.customFieldsData.get(field.get("id"))):
            missing.append(field.get("label") or field.get("id"))
    return missing


class ApplicationService:
    """Service layer for chef kitchen applications"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ApplicationRepository()

    def _get_application(self, application_id: int) -> ChefKitchenApplication:
        application = self.repo.get_by_id(self.db, application_id)
        if not application:
            raise HTTPException(status_code=404, detail="Application not found")
        return application

    def _get_chef_application(self, application_id: int, chef: User) -> ChefKitchenApplication:
        application = self._get_application(application_id)
        if application.chef_id != chef.id:
            raise HTTPException(status_code=403, detail="Access denied to this application")
        return application

    def _get_manager_application(self, application_id: int, manager: User) -> ChefKitchenApplication:
        application = self._get_application(application_id)
        if not application.location or application.location.manager_id != manager.id:
            logger.warning(f"⚠️ Manager {manager.id} denied access to application {application_id}")
            raise HTTPException(status_code=403, detail="Access denied to this application")
        return application

    async def create_application(self, chef: User, data: ApplicationCreate) -> dict:
        logger.info(f"📥 Application from chef {chef.id} for location {data.locationId}")
        location = self.repo.get_location(self.db, data.locationId)
        if not location:
            raise HTTPException(status_code=404, detail="Location not found")

        stored = self.repo.get_requirements(self.db, location.id)
        requirements = requirements_to_dict(stored) if stored else default_requirements(location.id)
        missing = find_missing_requirements(data, requirements)
        if missing:
            raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

        fields = {
            "full_name": data.fullName.strip(),
            "email": data.email,
            "phone": data.phone,
            "kitchen_preference": data.kitchenPreference,
            "business_name": data.businessName,
            "business_type": data.businessType,
            "business_description": data.businessDescription,
            "cooking_experience": data.cookingExperience,
            "usage_frequency": data.usageFrequency,
            "session_duration": data.sessionDuration,
            "food_safety_license": data.foodSafetyLicense,
            "food_safety_license_url": data.foodSafetyLicenseUrl,
            "food_safety_license_expiry": data.foodSafetyLicenseExpiry,
            "food_establishment_cert": data.foodEstablishmentCert,
            "food_establishment_cert_url": data.foodEstablishmentCertUrl,
            "food_establishment_cert_expiry": data.foodEstablishmentCertExpiry,
            "custom_fields_data": data.customFieldsData,
        }

        existing = self.repo.get_for_chef_and_location(self.db, chef.id, location.id)
        if existing:
            # Resubmission starts the review over
            application = self.repo.update(
                self.db,
                existing,
                status="inReview",
                feedback=None,
                reviewed_by=None,
                reviewed_at=None,
                **fields,
            )
            logger.info(f"✅ Application {application.id} resubmitted by chef {chef.id}")
        else:
            application = self.repo.create(
                self.db, chef_id=chef.id, location_id=location.id, status="inReview", current_tier=1, **fields
            )
            logger.info(f"✅ Application {application.id} created for location {location.id}")

        manager = location.manager
        recipient = location.notification_email or (manager.email if manager else None)
        if recipient:
            await notify(
                "application_submitted",
                send_application_submitted_email,
                to=recipient,
                manager_name=(manager.full_name or manager.username or "there") if manager else "there",
                chef_name=application.full_name,
                location_name=location.name,
            )
        return application_to_response(application)

    def get_chef_applications(self, chef: User) -> list[dict]:
        return [application_to_response(a) for a in self.repo.get_by_chef(self.db, chef.id)]

    def get_applications_for_manager(self, manager: User) -> list[dict]:
        return [application_to_response(a) for a in self.repo.get_by_manager(self.db, manager.id)]

    def get_application_by_id(self, user: User, application_id: int) -> dict:
        application = self._get_application(application_id)
        is_owner = application.chef_id == user.id
        is_location_manager = application.location and application.location.manager_id == user.id
        if not (is_owner or is_location_manager or user.role == "admin"):
            raise HTTPException(status_code=403, detail="Access denied to this application")
        return application_to_response(application)

    def get_application_status(self, chef: User, location_id: int) -> dict:
        application = self.repo.get_for_chef_and_location(self.db, chef.id, location_id)
        if not application:
            return {
                "hasApplication": False,
                "status": None,
                "canBook": False,
                "message": "You have not applied to this location yet",
            }

        can_book = application.status == "approved" and (application.current_tier or 1) >= BOOKABLE_TIER
        if can_book:
            message = "You can book kitchens at this location"
        elif application.status == "approved":
            message = "Your application is approved. Complete the remaining steps to start booking"
        elif application.status == "inReview":
            message = "Your application is being reviewed"
        elif application.status == "rejected":
            message = "Your application was not approved. You can update it and apply again"
        else:
            message = "Your application was cancelled"
        return {
            "hasApplication": True,
            "status": application.status,
            "canBook": can_book,
            "message": message,
        }

    async def update_status(
        self, manager: User, application_id: int, status: str, feedback: Optional[str] = None
    ) -> dict:
        if status not in APPLICATION_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Invalid status. Must be one of: {', '.join(APPLICATION_STATUSES)}"
            )
        application = self._get_manager_application(application_id, manager)

        now = datetime.utcnow()
        updates = {"status": status, "feedback": feedback, "reviewed_by": manager.id, "reviewed_at": now}
        if status == "approved":
            updates["tier1_completed_at"] = application.tier1_completed_at or now
            updates["current_tier"] = max(application.current_tier or 1, 2)
        application = self.repo.update(self.db, application, **updates)
        logger.info(f"✅ Application {application.id} set to {status} by manager {manager.id}")

        await notify(
            "application_status",
            send_application_status_email,
            to=application.email,
            chef_name=application.full_name,
            location_name=application.location.name,
            status=status,
            feedback=feedback,
        )
        return application_to_response(application)

    def cancel_application(self, chef: User, application_id: int) -> dict:
        application = self._get_chef_application(application_id, chef)
        application = self.repo.update(self.db, application, status="cancelled")
        logger.info(f"✅ Application {application.id} cancelled by chef {chef.id}")
        return application_to_response(application)

    def update_documents(self, chef: User, application_id: int, data: ApplicationDocumentsUpdate) -> dict:
        """Replace document links; a changed document on an approved application needs a new review"""
        application = self._get_chef_application(application_id, chef)
        provided = data.model_dump(exclude_unset=True)
        updates = {DOCUMENT_COLUMNS[field]: value for field, value in provided.items()}
        changed = any(getattr(application, column) != value for column, value in updates.items())
        if not changed:
            return application_to_response(application)

        if application.status == "approved":
            updates["status"] = "inReview"
            logger.info(f"⚠️ Application {application.id} back in review after a document change")
        application = self.repo.update(self.db, application, **updates)
        return application_to_response(application)

    def update_tier(self, manager: User, application_id: int, tier: int, tier_data: Optional[dict] = None) -> dict:
        if tier < 1 or tier > 4:
            raise HTTPException(status_code=400, detail="Tier must be between 1 and 4")
        application = self._get_manager_application(application_id, manager)

        updates = {"current_tier": tier, TIER_TIMESTAMP_COLUMNS[tier]: datetime.utcnow()}
        if tier_data is not None:
            updates["tier_data"] = {**(application.tier_data or {}), **tier_data}
        application = self.repo.update(self.db, application, **updates)
        logger.info(f"✅ Application {application.id} moved to tier {tier}")
        return application_to_response(application)
