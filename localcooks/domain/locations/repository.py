"""Location repository - Database operations for locations and their requirements"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Kitchen, Location, LocationRequirements, User


class LocationRepository:
    """Repository for location database operations"""

    @staticmethod
    def get_by_id(db: Session, location_id: int) -> Optional[Location]:
        return db.query(Location).filter(Location.id == location_id).first()

    @staticmethod
    def get_by_manager(db: Session, manager_id: int) -> list[Location]:
        return db.query(Location).filter(Location.manager_id == manager_id).order_by(Location.id).all()

    @staticmethod
    def get_all(db: Session) -> list[Location]:
        return db.query(Location).order_by(Location.name).all()

    @staticmethod
    def count_by_manager(db: Session, manager_id: int) -> int:
        return db.query(func.count(Location.id)).filter(Location.manager_id == manager_id).scalar() or 0

    @staticmethod
    def count_kitchens(db: Session, location_id: int) -> int:
        return db.query(func.count(Kitchen.id)).filter(Kitchen.location_id == location_id).scalar() or 0

    @staticmethod
    def create(db: Session, **data) -> Location:
        location = Location(**data)
        db.add(location)
        db.commit()
        db.refresh(location)
        return location

    @staticmethod
    def update(db: Session, location: Location, **updates) -> Location:
        for key, value in updates.items():
            if hasattr(location, key):
                setattr(location, key, value)
        db.commit()
        db.refresh(location)
        return location

    @staticmethod
    def delete(db: Session, location: Location) -> None:
        if location.requirements:
            db.delete(location.requirements)
        db.delete(location)
        db.commit()

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_requirements(db: Session, location_id: int) -> Optional[LocationRequirements]:
        return db.query(LocationRequirements).filter(LocationRequirements.location_id == location_id).first()

    @staticmethod
    def upsert_requirements(db: Session, location_id: int, **fields) -> LocationRequirements:
        requirements = (
            db.query(LocationRequirements).filter(LocationRequirements.location_id == location_id).first()
        )
        if requirements is None:
            requirements = LocationRequirements(location_id=location_id)
            db.add(requirements)
        for key, value in fields.items():
            setattr(requirements, key, value)
        db.commit()
        db.refresh(requirements)
        return requirements
