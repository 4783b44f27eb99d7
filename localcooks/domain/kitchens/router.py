"""Kitchen router - Manager kitchen setup and public kitchen listings"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_manager
from ...database import get_db
from ...models import User
from .schemas import (
    EquipmentListingCreate,
    EquipmentListingResponse,
    KitchenCreate,
    KitchenResponse,
    KitchenUpdate,
    StorageListingCreate,
    StorageListingResponse,
)
from .service import (
    KitchenService,
    equipment_listing_to_response,
    kitchen_to_response,
    storage_listing_to_response,
)

router = APIRouter(prefix="/manager", tags=["Kitchens"])
public_router = APIRouter(tags=["Kitchens"])


def get_kitchen_service(db: Session = Depends(get_db)) -> KitchenService:
    """Dependency injection for KitchenService"""
    return KitchenService(db)


@router.get("/locations/{location_id}/kitchens", response_model=list[KitchenResponse])
async def get_location_kitchens(
    location_id: int,
    current_user: User = Depends(require_manager),
    service: KitchenService = Depends(get_kitchen_service),
):
    return [kitchen_to_response(k) for k in service.get_manager_kitchens(location_id, current_user)]


@router.post("/locations/{location_id}/kitchens", response_model=KitchenResponse)
async def create_kitchen(
    location_id: int,
    data: KitchenCreate,
    current_user: User = Depends(require_manager),
    service: KitchenService = Depends(get_kitchen_service),
):
    return kitchen_to_response(service.create_kitchen(location_id, data, current_user))


@router.put("/kitchens/{kitchen_id}", response_model=KitchenResponse)
async def update_kitchen(
    kitchen_id: int,
    data: KitchenUpdate,
    current_user: User = Depends(require_manager),
    service: KitchenService = Depends(get_kitchen_service),
):
    return kitchen_to_response(service.update_kitchen(kitchen_id, data, current_user))


@router.post("/kitchens/{kitchen_id}/storage-listings", response_model=StorageListingResponse)
async def create_storage_listing(
    kitchen_id: int,
    data: StorageListingCreate,
    current_user: User = Depends(require_manager),
    service: KitchenService = Depends(get_kitchen_service),
):
    return storage_listing_to_response(service.create_storage_listing(kitchen_id, data, current_user))


@router.post("/kitchens/{kitchen_id}/equipment-listings", response_model=EquipmentListingResponse)
async def create_equipment_listing(
    kitchen_id: int,
    data: EquipmentListingCreate,
    current_user: User = Depends(require_manager),
    service: KitchenService = Depends(get_kitchen_service),
):
    return equipment_listing_to_response(service.create_equipment_listing(kitchen_id, data, current_user))


# ============================================================================
# PUBLIC
# ============================================================================


@public_router.get("/locations/{location_id}/kitchens", response_model=list[KitchenResponse])
async def get_public_kitchens(location_id: int, service: KitchenService = Depends(get_kitchen_service)):
    """Active kitchens at a location"""
    return [kitchen_to_response(k) for k in service.get_public_kitchens(location_id)]


@public_router.get("/kitchens/{kitchen_id}/storage-listings", response_model=list[StorageListingResponse])
async def get_storage_listings(kitchen_id: int, service: KitchenService = Depends(get_kitchen_service)):
    return [storage_listing_to_response(s) for s in service.get_storage_listings(kitchen_id)]


@public_router.get("/kitchens/{kitchen_id}/equipment-listings", response_model=list[EquipmentListingResponse])
async def get_equipment_listings(kitchen_id: int, service: KitchenService = Depends(get_kitchen_service)):
    return [equipment_listing_to_response(e) for e in service.get_equipment_listings(kitchen_id)]
