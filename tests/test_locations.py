import asyncio
from datetime import date

import pytest
from fastapi import HTTPException

from localcooks.domain.kitchens.schemas import KitchenCreate, KitchenUpdate, StorageListingCreate
from localcooks.domain.kitchens.service import KitchenService
from localcooks.domain.locations.schemas import LocationCreate, LocationRequirementsUpdate, LocationUpdate
from localcooks.domain.locations.service import MAX_LOCATIONS_PER_MANAGER, LocationService


def test_create_location_uses_manager_email_and_defaults(db, manager):
    location = LocationService(db).create_location(
        LocationCreate(name="  Downtown  ", address="5 Duckworth St"), manager
    )

    assert location.name == "Downtown"
    assert location.notification_email == "manager@example.com"
    assert location.cancellation_policy_hours == 24
    assert location.default_daily_booking_limit == 2
    assert location.kitchen_license_status == "pending"


def test_location_limit_per_manager(db, manager):
    service = LocationService(db)
    for i in range(MAX_LOCATIONS_PER_MANAGER):
        service.create_location(LocationCreate(name=f"Site {i}", address="Somewhere"), manager)
    with pytest.raises(HTTPException) as exc:
        service.create_location(LocationCreate(name="One too many", address="Somewhere"), manager)
    assert exc.value.status_code == 400


def test_blank_name_is_rejected():
    with pytest.raises(ValueError):
        LocationCreate(name="   ", address="Somewhere")


def test_update_location_only_changes_given_fields(db, manager, location):
    updated = LocationService(db).update_location(
        location.id, LocationUpdate(cancellationPolicyHours=48), manager
    )
    assert updated.cancellation_policy_hours == 48
    assert updated.name == "Harbour Kitchen"


def test_update_location_cannot_change_manager(db, manager, other_manager, location):
    with pytest.raises(HTTPException) as exc:
        LocationService(db).update_location(location.id, LocationUpdate(managerId=other_manager.id), manager)
    assert exc.value.status_code == 400


def test_other_manager_cannot_update(db, other_manager, location):
    with pytest.raises(HTTPException) as exc:
        LocationService(db).update_location(location.id, LocationUpdate(name="Mine now"), other_manager)
    assert exc.value.status_code == 403


def test_location_with_kitchens_cannot_be_deleted(db, manager, location, kitchen):
    with pytest.raises(HTTPException) as exc:
        LocationService(db).delete_location(location.id, manager)
    assert exc.value.status_code == 409


def test_delete_empty_location(db, manager, location):
    assert LocationService(db).delete_location(location.id, manager) == {"message": "Location deleted"}
    with pytest.raises(HTTPException) as exc:
        LocationService(db).get_location_by_id(location.id)
    assert exc.value.status_code == 404


# ============================================================================
# KITCHEN LICENSE
# ============================================================================


def test_license_upload_resets_review(db, manager, location):
    location.kitchen_license_status = "rejected"
    location.kitchen_license_feedback = "Blurry scan"
    db.commit()

    updated = LocationService(db).update_kitchen_license(
        location.id, "https://files.example.com/license.pdf", date(2027, 6, 30), manager
    )

    assert updated.kitchen_license_status == "pending"
    assert updated.kitchen_license_feedback is None
    assert updated.kitchen_license_url == "https://files.example.com/license.pdf"


def test_license_approval_requires_expiry(db, admin, location):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(LocationService(db).verify_kitchen_license(location.id, "approved", None, None, admin.id))
    assert exc.value.status_code == 400


def test_license_approval_notifies_manager(db, admin, location, sent_emails):
    updated = asyncio.run(
        LocationService(db).verify_kitchen_license(location.id, "approved", None, date(2027, 6, 30), admin.id)
    )

    assert updated.kitchen_license_status == "approved"
    assert updated.kitchen_license_approved_by == admin.id
    assert updated.kitchen_license_approved_at is not None
    assert sent_emails.await_args.kwargs["to"] == "bookings@harbour.example.com"


def test_license_rejection_keeps_feedback(db, admin, location):
    updated = asyncio.run(
        LocationService(db).verify_kitchen_license(location.id, "rejected", "Expired document", None, admin.id)
    )
    assert updated.kitchen_license_status == "rejected"
    assert updated.kitchen_license_feedback == "Expired document"


# ============================================================================
# REQUIREMENTS
# ============================================================================


def test_requirements_default_when_never_configured(db, location):
    requirements = LocationService(db).get_location_requirements_with_defaults(location.id)
    assert requirements["id"] == -1
    assert requirements["requirePhone"] is True
    assert requirements["requireBusinessDescription"] is False
    assert requirements["customFields"] == []


def test_requirements_upsert_keeps_other_defaults(db, manager, location):
    service = LocationService(db)
    saved = service.upsert_location_requirements(
        location.id,
        LocationRequirementsUpdate(
            requirePhone=False,
            customFields=[{"id": "allergens", "label": "Allergens handled", "required": True}],
        ),
        manager,
    )

    assert saved["id"] > 0
    assert saved["requirePhone"] is False
    assert saved["requireEmail"] is True
    assert saved["customFields"][0]["id"] == "allergens"

    again = service.upsert_location_requirements(location.id, LocationRequirementsUpdate(requireEmail=False), manager)
    assert again["id"] == saved["id"]
    assert again["requirePhone"] is False
    assert again["requireEmail"] is False


def test_requirements_null_list_becomes_empty(db, manager, location):
    saved = LocationService(db).upsert_location_requirements(
        location.id, LocationRequirementsUpdate(customFields=None), manager
    )
    assert saved["customFields"] == []


# ============================================================================
# KITCHENS AND LISTINGS
# ============================================================================


def test_create_kitchen_at_owned_location(db, manager, location):
    kitchen = KitchenService(db).create_kitchen(
        location.id, KitchenCreate(name="Pastry Room", hourlyRate=4000, currency="cad", taxRatePercent=15), manager
    )
    assert kitchen.currency == "CAD"
    assert kitchen.hourly_rate == 4000


def test_create_kitchen_elsewhere_is_denied(db, other_manager, location):
    with pytest.raises(HTTPException) as exc:
        KitchenService(db).create_kitchen(location.id, KitchenCreate(name="Sneaky"), other_manager)
    assert exc.value.status_code == 403


def test_inactive_kitchens_are_hidden_from_chefs(db, manager, location, kitchen):
    service = KitchenService(db)
    service.update_kitchen(kitchen.id, KitchenUpdate(isActive=False), manager)

    assert service.get_public_kitchens(location.id) == []
    assert [k.id for k in service.get_manager_kitchens(location.id, manager)] == [kitchen.id]


def test_storage_listing_type_is_validated(db, manager, kitchen):
    with pytest.raises(HTTPException) as exc:
        KitchenService(db).create_storage_listing(
            kitchen.id, StorageListingCreate(name="Attic", storageType="attic", basePrice=500), manager
        )
    assert exc.value.status_code == 400
