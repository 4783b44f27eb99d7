"""
Damage claim limits stored in platform_settings.

Admins tune these at runtime; the defaults apply when a key has never been
saved or holds something that is not an integer.
"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from .repository import DamageClaimRepository

logger = logging.getLogger(__name__)

# response field -> (platform_settings key, default)
DAMAGE_CLAIM_LIMIT_SETTINGS = {
    "maxClaimAmountCents": ("damage_claim_max_amount_cents", 500000),
    "minClaimAmountCents": ("damage_claim_min_amount_cents", 1000),
    "maxClaimsPerBooking": ("damage_claim_max_per_booking", 3),
    "chefResponseDeadlineHours": ("damage_claim_response_deadline_hours", 72),
    "claimSubmissionDeadlineDays": ("damage_claim_submission_deadline_days", 14),
}

STORAGE_CHECKOUT_SETTINGS = {
    "reviewWindowHours": ("storage_checkout_review_window_hours", 2),
    "extendedClaimWindowHours": ("storage_checkout_extended_claim_window_hours", 48),
}

SETTING_DESCRIPTIONS = {
    "damage_claim_max_amount_cents": "Largest amount a single damage claim may ask for",
    "damage_claim_min_amount_cents": "Smallest amount a damage claim may ask for",
    "damage_claim_max_per_booking": "Number of damage claims allowed per booking",
    "damage_claim_response_deadline_hours": "Hours a chef has to respond before auto-approval",
    "damage_claim_submission_deadline_days": "Days after a booking during which damage can be claimed",
}


def format_dollars(cents: int) -> str:
    return f"${cents / 100:.2f}"


class DamageClaimLimitsService:
    """Reads and writes the admin-controlled claim limits"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = DamageClaimRepository()

    def _read(self, settings: dict) -> dict:
        stored = self.repo.get_settings(self.db, [key for key, _ in settings.values()])
        values = {}
        for field, (key, default) in settings.items():
            raw = stored.get(key)
            try:
                values[field] = int(raw) if raw is not None else default
            except ValueError:
                logger.warning(f"⚠️ Invalid value '{raw}' for setting {key}, using default {default}")
                values[field] = default
        return values

    def get_limits(self) -> dict:
        return self._read(DAMAGE_CLAIM_LIMIT_SETTINGS)

    def get_storage_checkout_settings(self) -> dict:
        return self._read(STORAGE_CHECKOUT_SETTINGS)

    def validate_claim_amount(self, amount_cents: int) -> Optional[str]:
        """Error message for an out-of-range amount, None when it is allowed"""
        limits = self.get_limits()
        if amount_cents < limits["minClaimAmountCents"]:
            return f"Claim amount must be at least {format_dollars(limits['minClaimAmountCents'])}"
        if amount_cents > limits["maxClaimAmountCents"]:
            return (
                f"Claim amount cannot exceed {format_dollars(limits['maxClaimAmountCents'])}. "
                "For larger claims, contact platform support."
            )
        return None

    def update_limits(self, admin: User, updates: dict) -> dict:
        all_settings = {**DAMAGE_CLAIM_LIMIT_SETTINGS, **STORAGE_CHECKOUT_SETTINGS}
        current = self.get_limits()
        merged = {**current, **{k: v for k, v in updates.items() if k in DAMAGE_CLAIM_LIMIT_SETTINGS}}
        if merged["minClaimAmountCents"] > merged["maxClaimAmountCents"]:
            raise HTTPException(status_code=400, detail="Minimum claim amount cannot exceed the maximum")

        for field, value in updates.items():
            if value is None or field not in all_settings:
                continue
            key = all_settings[field][0]
            self.repo.upsert_setting(
                self.db, key, str(int(value)), updated_by=admin.id, description=SETTING_DESCRIPTIONS.get(key)
            )
        self.db.commit()
        logger.info(f"✅ Damage claim limits updated by admin {admin.id}: {updates}")
        return {**self.get_limits(), **self.get_storage_checkout_settings()}
