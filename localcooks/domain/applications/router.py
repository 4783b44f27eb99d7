"""Application router - Chef applications to kitchen locations"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_chef, require_manager
from ...database import get_db
from ...models import User
from .schemas import (
    ApplicationCreate,
    ApplicationDocumentsUpdate,
    ApplicationStatusUpdate,
    ApplicationTierUpdate,
)
from .service import ApplicationService

logger = logging.getLogger(__name__)

chef_router = APIRouter(prefix="/chef/applications", tags=["Applications"])
manager_router = APIRouter(prefix="/manager/applications", tags=["Applications"])
router = APIRouter(prefix="/applications", tags=["Applications"])


def get_application_service(db: Session = Depends(get_db)) -> ApplicationService:
    """Dependency injection for ApplicationService"""
    return ApplicationService(db)


# ============================================================================
# CHEF ENDPOINTS
# ============================================================================


@chef_router.post("")
async def create_application(
    data: ApplicationCreate,
    current_user: User = Depends(require_chef),
    service: ApplicationService = Depends(get_application_service),
):
    """Apply to a location, or resubmit an earlier application"""
    return await service.create_application(current_user, data)


@chef_router.get("")
async def get_my_applications(
    current_user: User = Depends(require_chef),
    service: ApplicationService = Depends(get_application_service),
):
    return service.get_chef_applications(current_user)


@chef_router.get("/status/{location_id}")
async def get_application_status(
    location_id: int,
    current_user: User = Depends(require_chef),
    service: ApplicationService = Depends(get_application_service),
):
    """Whether the chef may book kitchens at this location"""
    return service.get_application_status(current_user, location_id)


@chef_router.put("/{application_id}/cancel")
async def cancel_application(
    application_id: int,
    current_user: User = Depends(require_chef),
    service: ApplicationService = Depends(get_application_service),
):
    return service.cancel_application(current_user, application_id)


@chef_router.put("/{application_id}/documents")
async def update_documents(
    application_id: int,
    data: ApplicationDocumentsUpdate,
    current_user: User = Depends(require_chef),
    service: ApplicationService = Depends(get_application_service),
):
    return service.update_documents(current_user, application_id, data)


# ============================================================================
# MANAGER ENDPOINTS
# ============================================================================


@manager_router.get("")
async def get_manager_applications(
    current_user: User = Depends(require_manager),
    service: ApplicationService = Depends(get_application_service),
):
    return service.get_applications_for_manager(current_user)


@manager_router.put("/{application_id}/status")
async def update_application_status(
    application_id: int,
    data: ApplicationStatusUpdate,
    current_user: User = Depends(require_manager),
    service: ApplicationService = Depends(get_application_service),
):
    return await service.update_status(current_user, application_id, data.status, data.feedback)


@manager_router.put("/{application_id}/tier")
async def update_application_tier(
    application_id: int,
    data: ApplicationTierUpdate,
    current_user: User = Depends(require_manager),
    service: ApplicationService = Depends(get_application_service),
):
    return service.update_tier(current_user, application_id, data.tier, data.tierData)


# ============================================================================
# SHARED
# ============================================================================


@router.get("/{application_id}")
async def get_application(
    application_id: int,
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.get_application_by_id(current_user, application_id)
