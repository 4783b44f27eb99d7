"""Location router - FastAPI endpoints for kitchen locations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_admin, require_manager
from ...database import get_db
from ...models import User
from .schemas import (
    KitchenLicenseUpload,
    KitchenLicenseVerification,
    LocationCreate,
    LocationRequirementsUpdate,
    LocationResponse,
    LocationUpdate,
)
from .service import LocationService, location_to_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/manager/locations", tags=["Locations"])
public_router = APIRouter(prefix="/locations", tags=["Locations"])
admin_router = APIRouter(prefix="/admin/locations", tags=["Admin"])


def get_location_service(db: Session = Depends(get_db)) -> LocationService:
    """Dependency injection for LocationService"""
    return LocationService(db)


# ============================================================================
# MANAGER ENDPOINTS
# ============================================================================


@router.get("", response_model=list[LocationResponse])
async def get_my_locations(
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    return [location_to_response(loc) for loc in service.get_locations_by_manager(current_user)]


@router.post("", response_model=LocationResponse)
async def create_location(
    data: LocationCreate,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    """Create a location (max 10 per manager)"""
    return location_to_response(service.create_location(data, current_user))


@router.get("/{location_id}", response_model=LocationResponse)
async def get_location(
    location_id: int,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    return location_to_response(service.get_owned_location(location_id, current_user))


@router.put("/{location_id}", response_model=LocationResponse)
async def update_location(
    location_id: int,
    data: LocationUpdate,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    return location_to_response(service.update_location(location_id, data, current_user))


@router.delete("/{location_id}")
async def delete_location(
    location_id: int,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    """Delete a location that has no kitchens"""
    return service.delete_location(location_id, current_user)


@router.put("/{location_id}/kitchen-license", response_model=LocationResponse)
async def upload_kitchen_license(
    location_id: int,
    data: KitchenLicenseUpload,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    """Attach a newly uploaded kitchen license; it goes back to pending review"""
    location = service.update_kitchen_license(
        location_id, data.kitchenLicenseUrl, data.kitchenLicenseExpiry, current_user
    )
    return location_to_response(location)


@router.get("/{location_id}/requirements")
async def get_requirements(
    location_id: int,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    service.get_owned_location(location_id, current_user)
    return service.get_location_requirements_with_defaults(location_id)


@router.put("/{location_id}/requirements")
async def update_requirements(
    location_id: int,
    data: LocationRequirementsUpdate,
    current_user: User = Depends(require_manager),
    service: LocationService = Depends(get_location_service),
):
    return service.upsert_location_requirements(location_id, data, current_user)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================


@public_router.get("", response_model=list[LocationResponse])
async def list_locations(service: LocationService = Depends(get_location_service)):
    return [location_to_response(loc) for loc in service.get_all_locations()]


@public_router.get("/{location_id}/requirements")
async def get_public_requirements(
    location_id: int,
    service: LocationService = Depends(get_location_service),
):
    """Application requirements a chef sees before applying"""
    service.get_location_by_id(location_id)
    return service.get_location_requirements_with_defaults(location_id)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================


@admin_router.get("", response_model=list[LocationResponse])
async def admin_list_locations(
    current_user: User = Depends(require_admin),
    service: LocationService = Depends(get_location_service),
):
    return [location_to_response(loc) for loc in service.get_all_locations()]


@admin_router.put("/{location_id}/kitchen-license", response_model=LocationResponse)
async def verify_kitchen_license(
    location_id: int,
    data: KitchenLicenseVerification,
    current_user: User = Depends(require_admin),
    service: LocationService = Depends(get_location_service),
):
    """Approve or reject a location's kitchen license"""
    location = await service.verify_kitchen_license(
        location_id,
        data.status,
        data.feedback,
        data.expiry,
        approved_by=current_user.id,
    )
    return location_to_response(location)
