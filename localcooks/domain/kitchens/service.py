"""Kitchen service - Kitchens and the storage/equipment offered with them"""

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import EquipmentListing, Kitchen, Location, StorageListing, User
from .repository import KitchenRepository
from .schemas import (
    STORAGE_TYPES,
    EquipmentListingCreate,
    KitchenCreate,
    KitchenUpdate,
    StorageListingCreate,
)

logger = logging.getLogger(__name__)


def kitchen_to_response(k: Kitchen) -> dict:
    return {
        "id": k.id,
        "locationId": k.location_id,
        "name": k.name,
        "description": k.description,
        "hourlyRate": k.hourly_rate,
        "currency": k.currency,
        "minimumBookingHours": k.minimum_booking_hours,
        "taxRatePercent": k.tax_rate_percent,
        "isActive": k.is_active,
    }


def storage_listing_to_response(s: StorageListing) -> dict:
    return {
        "id": s.id,
        "kitchenId": s.kitchen_id,
        "name": s.name,
        "storageType": s.storage_type,
        "description": s.description,
        "basePrice": s.base_price,
        "minimumBookingDuration": s.minimum_booking_duration,
        "isActive": s.is_active,
    }


def equipment_listing_to_response(e: EquipmentListing) -> dict:
    return {
        "id": e.id,
        "kitchenId": e.kitchen_id,
        "equipmentType": e.equipment_type,
        "brand": e.brand,
        "description": e.description,
        "sessionRate": e.session_rate,
        "damageDeposit": e.damage_deposit,
        "isActive": e.is_active,
    }


class KitchenService:
    """Service layer for kitchen business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = KitchenRepository()

    def _get_owned_location(self, location_id: int, manager: User) -> Location:
        location = self.repo.get_location(self.db, location_id)
        if not location:
            raise HTTPException(status_code=404, detail="Location not found")
        if location.manager_id != manager.id:
            raise HTTPException(status_code=403, detail="Access denied to this location")
        return location

    def get_kitchen(self, kitchen_id: int) -> Kitchen:
        kitchen = self.repo.get_by_id(self.db, kitchen_id)
        if not kitchen:
            raise HTTPException(status_code=404, detail="Kitchen not found")
        return kitchen

    def get_owned_kitchen(self, kitchen_id: int, manager: User) -> Kitchen:
        kitchen = self.get_kitchen(kitchen_id)
        if kitchen.location.manager_id != manager.id:
            raise HTTPException(status_code=403, detail="Access denied to this kitchen")
        return kitchen

    def get_manager_kitchens(self, location_id: int, manager: User) -> list[Kitchen]:
        self._get_owned_location(location_id, manager)
        return self.repo.get_by_location(self.db, location_id)

    def get_public_kitchens(self, location_id: int) -> list[Kitchen]:
        """Active kitchens a chef can book at a location"""
        if not self.repo.get_location(self.db, location_id):
            raise HTTPException(status_code=404, detail="Location not found")
        return self.repo.get_by_location(self.db, location_id, active_only=True)

    def create_kitchen(self, location_id: int, data: KitchenCreate, manager: User) -> Kitchen:
        self._get_owned_location(location_id, manager)
        kitchen = self.repo.create(
            self.db,
            Kitchen,
            location_id=location_id,
            name=data.name.strip(),
            description=data.description,
            hourly_rate=data.hourlyRate,
            currency=data.currency.upper(),
            minimum_booking_hours=data.minimumBookingHours,
            tax_rate_percent=data.taxRatePercent,
            is_active=data.isActive,
        )
        logger.info(f"✅ Kitchen {kitchen.id} created at location {location_id}")
        return kitchen

    def update_kitchen(self, kitchen_id: int, data: KitchenUpdate, manager: User) -> Kitchen:
        kitchen = self.get_owned_kitchen(kitchen_id, manager)
        field_map = {
            "name": "name",
            "description": "description",
            "hourlyRate": "hourly_rate",
            "minimumBookingHours": "minimum_booking_hours",
            "taxRatePercent": "tax_rate_percent",
            "isActive": "is_active",
        }
        updates = {
            column: getattr(data, field) for field, column in field_map.items() if getattr(data, field) is not None
        }
        return self.repo.update(self.db, kitchen, **updates)

    # ========================================================================
    # ADD-ON LISTINGS
    # ========================================================================

    def get_storage_listings(self, kitchen_id: int, active_only: bool = True) -> list[StorageListing]:
        self.get_kitchen(kitchen_id)
        return self.repo.get_storage_listings(self.db, kitchen_id, active_only=active_only)

    def get_equipment_listings(self, kitchen_id: int, active_only: bool = True) -> list[EquipmentListing]:
        self.get_kitchen(kitchen_id)
        return self.repo.get_equipment_listings(self.db, kitchen_id, active_only=active_only)

    def create_storage_listing(self, kitchen_id: int, data: StorageListingCreate, manager: User) -> StorageListing:
        self.get_owned_kitchen(kitchen_id, manager)
        if data.storageType not in STORAGE_TYPES:
            raise HTTPException(
                status_code=400, detail=f"Storage type must be one of: {', '.join(STORAGE_TYPES)}"
            )
        return self.repo.create(
            self.db,
            StorageListing,
            kitchen_id=kitchen_id,
            name=data.name.strip(),
            storage_type=data.storageType,
            description=data.description,
            base_price=data.basePrice,
            minimum_booking_duration=data.minimumBookingDuration,
        )

    def create_equipment_listing(
        self, kitchen_id: int, data: EquipmentListingCreate, manager: User
    ) -> EquipmentListing:
        self.get_owned_kitchen(kitchen_id, manager)
        return self.repo.create(
            self.db,
            EquipmentListing,
            kitchen_id=kitchen_id,
            equipment_type=data.equipmentType.strip(),
            brand=data.brand,
            description=data.description,
            session_rate=data.sessionRate,
            damage_deposit=data.damageDeposit,
        )
