"""Damage claim repository - Database operations for claims, evidence and limits"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import (
    DamageClaim,
    DamageClaimHistory,
    DamageEvidence,
    KitchenBooking,
    PlatformSetting,
    StorageBooking,
)

CLOSED_CLAIM_STATUSES = ("resolved", "rejected", "expired")
UNPAID_CLAIM_STATUSES = ("approved", "partially_approved", "chef_accepted", "charge_pending", "charge_failed")


class DamageClaimRepository:
    """Repository for damage claim database operations"""

    @staticmethod
    def get_claim(db: Session, claim_id: int) -> Optional[DamageClaim]:
        return db.query(DamageClaim).filter(DamageClaim.id == claim_id).first()

    @staticmethod
    def get_manager_claims(db: Session, manager_id: int, include_all: bool = False) -> list[DamageClaim]:
        query = db.query(DamageClaim).filter(DamageClaim.manager_id == manager_id)
        if not include_all:
            query = query.filter(DamageClaim.status.notin_(CLOSED_CLAIM_STATUSES))
        return query.order_by(DamageClaim.created_at.desc(), DamageClaim.id.desc()).all()

    @staticmethod
    def get_chef_claims(db: Session, chef_id: int) -> list[DamageClaim]:
        """Everything a chef can see; drafts stay private to the manager"""
        return (
            db.query(DamageClaim)
            .filter(DamageClaim.chef_id == chef_id, DamageClaim.status != "draft")
            .order_by(DamageClaim.created_at.desc(), DamageClaim.id.desc())
            .all()
        )

    @staticmethod
    def get_claims_by_status(db: Session, status: str) -> list[DamageClaim]:
        return db.query(DamageClaim).filter(DamageClaim.status == status).order_by(DamageClaim.id).all()

    @staticmethod
    def get_unpaid_claims(db: Session, chef_id: int) -> list[DamageClaim]:
        return (
            db.query(DamageClaim)
            .filter(DamageClaim.chef_id == chef_id, DamageClaim.status.in_(UNPAID_CLAIM_STATUSES))
            .order_by(DamageClaim.id)
            .all()
        )

    @staticmethod
    def get_expired_submitted_claims(db: Session, now: datetime) -> list[DamageClaim]:
        return (
            db.query(DamageClaim)
            .filter(DamageClaim.status == "submitted", DamageClaim.chef_response_deadline < now)
            .order_by(DamageClaim.id)
            .all()
        )

    @staticmethod
    def count_claims_for_booking(db: Session, booking_type: str, booking_id: int) -> int:
        column = DamageClaim.storage_booking_id if booking_type == "storage" else DamageClaim.kitchen_booking_id
        return (
            db.query(func.count(DamageClaim.id))
            .filter(column == booking_id, DamageClaim.booking_type == booking_type)
            .scalar()
            or 0
        )

    @staticmethod
    def get_kitchen_booking(db: Session, booking_id: int) -> Optional[KitchenBooking]:
        return db.query(KitchenBooking).filter(KitchenBooking.id == booking_id).first()

    @staticmethod
    def get_storage_booking(db: Session, booking_id: int) -> Optional[StorageBooking]:
        return db.query(StorageBooking).filter(StorageBooking.id == booking_id).first()

    @staticmethod
    def get_storage_booking_with_payment(db: Session, kitchen_booking_id: int) -> Optional[StorageBooking]:
        """Storage booking from the same checkout that kept a saved card"""
        return (
            db.query(StorageBooking)
            .filter(
                StorageBooking.kitchen_booking_id == kitchen_booking_id,
                StorageBooking.stripe_customer_id.isnot(None),
                StorageBooking.stripe_payment_method_id.isnot(None),
            )
            .order_by(StorageBooking.id)
            .first()
        )

    @staticmethod
    def get_evidence(db: Session, evidence_id: int) -> Optional[DamageEvidence]:
        return db.query(DamageEvidence).filter(DamageEvidence.id == evidence_id).first()

    @staticmethod
    def count_evidence(db: Session, claim_id: int) -> int:
        return (
            db.query(func.count(DamageEvidence.id)).filter(DamageEvidence.damage_claim_id == claim_id).scalar() or 0
        )

    @staticmethod
    def get_history(db: Session, claim_id: int) -> list[DamageClaimHistory]:
        return (
            db.query(DamageClaimHistory)
            .filter(DamageClaimHistory.damage_claim_id == claim_id)
            .order_by(DamageClaimHistory.created_at, DamageClaimHistory.id)
            .all()
        )

    @staticmethod
    def add(db: Session, row):
        db.add(row)
        db.flush()
        return row

    @staticmethod
    def delete(db: Session, row) -> None:
        db.delete(row)

    # Platform settings

    @staticmethod
    def get_settings(db: Session, keys: list[str]) -> dict[str, str]:
        rows = db.query(PlatformSetting).filter(PlatformSetting.key.in_(keys)).all()
        return {row.key: row.value for row in rows}

    @staticmethod
    def upsert_setting(
        db: Session, key: str, value: str, updated_by: Optional[int] = None, description: Optional[str] = None
    ) -> PlatformSetting:
        setting = db.query(PlatformSetting).filter(PlatformSetting.key == key).first()
        if setting is None:
            setting = PlatformSetting(key=key, value=value, description=description, updated_by=updated_by)
            db.add(setting)
        else:
            setting.value = value
            setting.updated_by = updated_by
            if description:
                setting.description = description
        return setting
