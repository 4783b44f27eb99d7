"""Application repository - Database operations for chef kitchen applications"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import ChefKitchenApplication, Location, LocationRequirements


class ApplicationRepository:
    """Repository for chef kitchen application database operations"""

    @staticmethod
    def get_by_id(db: Session, application_id: int) -> Optional[ChefKitchenApplication]:
        return db.query(ChefKitchenApplication).filter(ChefKitchenApplication.id == application_id).first()

    @staticmethod
    def get_for_chef_and_location(db: Session, chef_id: int, location_id: int) -> Optional[ChefKitchenApplication]:
        return (
            db.query(ChefKitchenApplication)
            .filter(ChefKitchenApplication.chef_id == chef_id, ChefKitchenApplication.location_id == location_id)
            .first()
        )

    @staticmethod
    def get_by_chef(db: Session, chef_id: int) -> list[ChefKitchenApplication]:
        return (
            db.query(ChefKitchenApplication)
            .filter(ChefKitchenApplication.chef_id == chef_id)
            .order_by(ChefKitchenApplication.created_at.desc(), ChefKitchenApplication.id.desc())
            .all()
        )

    @staticmethod
    def get_by_manager(db: Session, manager_id: int) -> list[ChefKitchenApplication]:
        """Applications across every location the manager runs"""
        return (
            db.query(ChefKitchenApplication)
            .join(Location, ChefKitchenApplication.location_id == Location.id)
            .filter(Location.manager_id == manager_id)
            .order_by(ChefKitchenApplication.created_at.desc(), ChefKitchenApplication.id.desc())
            .all()
        )

    @staticmethod
    def get_location(db: Session, location_id: int) -> Optional[Location]:
        return db.query(Location).filter(Location.id == location_id).first()

    @staticmethod
    def get_requirements(db: Session, location_id: int) -> Optional[LocationRequirements]:
        return db.query(LocationRequirements).filter(LocationRequirements.location_id == location_id).first()

    @staticmethod
    def create(db: Session, **data) -> ChefKitchenApplication:
        application = ChefKitchenApplication(**data)
        db.add(application)
        db.commit()
        db.refresh(application)
        return application

    @staticmethod
    def update(db: Session, application: ChefKitchenApplication, **updates) -> ChefKitchenApplication:
        for key, value in updates.items():
            if hasattr(application, key):
                setattr(application, key, value)
        db.commit()
        db.refresh(application)
        return application
