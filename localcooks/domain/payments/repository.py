"""Payment repository - Database operations for payment transactions"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import EquipmentBooking, KitchenBooking, PaymentTransaction, StorageBooking


class PaymentRepository:
    """Repository for payment transaction database operations"""

    @staticmethod
    def get_transaction_by_id(db: Session, transaction_id: int) -> Optional[PaymentTransaction]:
        return db.query(PaymentTransaction).filter(PaymentTransaction.id == transaction_id).first()

    @staticmethod
    def get_transaction_by_intent_id(db: Session, payment_intent_id: str) -> Optional[PaymentTransaction]:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.payment_intent_id == payment_intent_id)
            .order_by(PaymentTransaction.id.desc())
            .first()
        )

    @staticmethod
    def get_manager_transactions(
        db: Session, manager_id: int, status: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> list[PaymentTransaction]:
        query = db.query(PaymentTransaction).filter(PaymentTransaction.manager_id == manager_id)
        if status:
            query = query.filter(PaymentTransaction.status == status)
        return query.order_by(PaymentTransaction.created_at.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def create_transaction(db: Session, commit: bool = True, **data) -> PaymentTransaction:
        transaction = PaymentTransaction(**data)
        db.add(transaction)
        if commit:
            db.commit()
            db.refresh(transaction)
        else:
            db.flush()
        return transaction

    @staticmethod
    def update_transaction(
        db: Session, transaction: PaymentTransaction, commit: bool = True, **updates
    ) -> PaymentTransaction:
        for key, value in updates.items():
            if hasattr(transaction, key):
                setattr(transaction, key, value)
        if commit:
            db.commit()
            db.refresh(transaction)
        return transaction

    @staticmethod
    def set_booking_payment_status(db: Session, booking_type: str, booking_id: int, payment_status: str) -> None:
        """Mirror a transaction outcome onto the booking the chef sees"""
        model = {
            "kitchen": KitchenBooking,
            "bundle": KitchenBooking,
            "storage": StorageBooking,
            "equipment": EquipmentBooking,
        }.get(booking_type)
        if model is None:
            return
        booking = db.query(model).filter(model.id == booking_id).first()
        if booking:
            booking.payment_status = payment_status

    @staticmethod
    def get_kitchen_booking_by_intent(db: Session, payment_intent_id: str) -> Optional[KitchenBooking]:
        return db.query(KitchenBooking).filter(KitchenBooking.payment_intent_id == payment_intent_id).first()

    @staticmethod
    def get_storage_bookings_by_intent(db: Session, payment_intent_id: str) -> list[StorageBooking]:
        return db.query(StorageBooking).filter(StorageBooking.payment_intent_id == payment_intent_id).all()

    @staticmethod
    def get_equipment_bookings_by_intent(db: Session, payment_intent_id: str) -> list[EquipmentBooking]:
        return db.query(EquipmentBooking).filter(EquipmentBooking.payment_intent_id == payment_intent_id).all()
