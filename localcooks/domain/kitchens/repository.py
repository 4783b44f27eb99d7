"""Kitchen repository - Database operations for kitchens and listings"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import EquipmentListing, Kitchen, Location, StorageListing


class KitchenRepository:
    """Repository for kitchen database operations"""

    @staticmethod
    def get_location(db: Session, location_id: int) -> Optional[Location]:
        return db.query(Location).filter(Location.id == location_id).first()

    @staticmethod
    def get_by_id(db: Session, kitchen_id: int) -> Optional[Kitchen]:
        return db.query(Kitchen).filter(Kitchen.id == kitchen_id).first()

    @staticmethod
    def get_by_location(db: Session, location_id: int, active_only: bool = False) -> list[Kitchen]:
        query = db.query(Kitchen).filter(Kitchen.location_id == location_id)
        if active_only:
            query = query.filter(Kitchen.is_active.is_(True))
        return query.order_by(Kitchen.id).all()

    @staticmethod
    def create(db: Session, model, **data):
        row = model(**data)
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def update(db: Session, row, **updates):
        for key, value in updates.items():
            if hasattr(row, key):
                setattr(row, key, value)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def get_storage_listings(db: Session, kitchen_id: int, active_only: bool = False) -> list[StorageListing]:
        query = db.query(StorageListing).filter(StorageListing.kitchen_id == kitchen_id)
        if active_only:
            query = query.filter(StorageListing.is_active.is_(True))
        return query.order_by(StorageListing.id).all()

    @staticmethod
    def get_equipment_listings(db: Session, kitchen_id: int, active_only: bool = False) -> list[EquipmentListing]:
        query = db.query(EquipmentListing).filter(EquipmentListing.kitchen_id == kitchen_id)
        if active_only:
            query = query.filter(EquipmentListing.is_active.is_(True))
        return query.order_by(EquipmentListing.id).all()
