"""Booking repository - Database operations for kitchen bookings and add-ons"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import (
    ChefKitchenApplication,
    EquipmentBooking,
    EquipmentListing,
    Kitchen,
    KitchenBooking,
    Location,
    StorageBooking,
    StorageListing,
    User,
)


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_by_id(db: Session, booking_id: int) -> Optional[KitchenBooking]:
        return db.query(KitchenBooking).filter(KitchenBooking.id == booking_id).first()

    @staticmethod
    def get_kitchen(db: Session, kitchen_id: int) -> Optional[Kitchen]:
        return db.query(Kitchen).filter(Kitchen.id == kitchen_id).first()

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_chef_bookings(db: Session, chef_id: int) -> list[KitchenBooking]:
        return (
            db.query(KitchenBooking)
            .filter(KitchenBooking.chef_id == chef_id)
            .order_by(KitchenBooking.booking_date.desc(), KitchenBooking.start_time.desc())
            .all()
        )

    @staticmethod
    def get_manager_bookings(db: Session, manager_id: int, status: Optional[str] = None) -> list[KitchenBooking]:
        query = (
            db.query(KitchenBooking)
            .join(Kitchen, KitchenBooking.kitchen_id == Kitchen.id)
            .join(Location, Kitchen.location_id == Location.id)
            .filter(Location.manager_id == manager_id)
        )
        if status:
            query = query.filter(KitchenBooking.status == status)
        return query.order_by(KitchenBooking.booking_date.desc(), KitchenBooking.start_time).all()

    @staticmethod
    def count_active_bookings_on_date(db: Session, kitchen_id: int, booking_date: date) -> int:
        return (
            db.query(func.count(KitchenBooking.id))
            .filter(
                KitchenBooking.kitchen_id == kitchen_id,
                KitchenBooking.booking_date == booking_date,
                KitchenBooking.status != "cancelled",
            )
            .scalar()
            or 0
        )

    @staticmethod
    def get_application(db: Session, chef_id: int, location_id: int) -> Optional[ChefKitchenApplication]:
        return (
            db.query(ChefKitchenApplication)
            .filter(
                ChefKitchenApplication.chef_id == chef_id,
                ChefKitchenApplication.location_id == location_id,
            )
            .first()
        )

    @staticmethod
    def get_storage_listing(db: Session, listing_id: int) -> Optional[StorageListing]:
        return db.query(StorageListing).filter(StorageListing.id == listing_id).first()

    @staticmethod
    def get_equipment_listing(db: Session, listing_id: int) -> Optional[EquipmentListing]:
        return db.query(EquipmentListing).filter(EquipmentListing.id == listing_id).first()

    @staticmethod
    def get_storage_bookings(db: Session, kitchen_booking_id: int) -> list[StorageBooking]:
        return (
            db.query(StorageBooking)
            .filter(StorageBooking.kitchen_booking_id == kitchen_booking_id)
            .order_by(StorageBooking.id)
            .all()
        )

    @staticmethod
    def get_equipment_bookings(db: Session, kitchen_booking_id: int) -> list[EquipmentBooking]:
        return (
            db.query(EquipmentBooking)
            .filter(EquipmentBooking.kitchen_booking_id == kitchen_booking_id)
            .order_by(EquipmentBooking.id)
            .all()
        )

    @staticmethod
    def get_capture_candidates(db: Session) -> list[KitchenBooking]:
        """Bookings still holding an uncaptured authorisation"""
        return (
            db.query(KitchenBooking)
            .filter(
                KitchenBooking.payment_intent_id.isnot(None),
                KitchenBooking.status != "cancelled",
                KitchenBooking.payment_status.in_(("pending", "authorized")),
            )
            .order_by(KitchenBooking.booking_date, KitchenBooking.start_time)
            .all()
        )

    @staticmethod
    def add(db: Session, row):
        db.add(row)
        db.flush()
        return row
