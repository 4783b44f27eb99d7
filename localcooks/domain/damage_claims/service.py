"""
Damage claim service - Manager claims against chefs

Lifecycle:
    draft -> submitted -> chef_accepted -> approved -> charge_pending -> charge_succeeded
                       -> chef_disputed -> under_review -> approved | partially_approved | rejected
    submitted past the response deadline -> approved (system)
    charge_failed -> approved (retry) | resolved (paid_manually, waived)
    charge_succeeded -> resolved (refunded, partially_refunded)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import ADMIN_EMAIL
from ...email_service import (
    notify,
    send_damage_claim_charged_email,
    send_damage_claim_decision_email,
    send_damage_claim_disputed_admin_email,
    send_damage_claim_filed_email,
    send_damage_claim_refunded_email,
    send_damage_claim_response_email,
)
from ...models import DamageClaim, DamageClaimHistory, DamageEvidence, User
from ...pricing import calculate_stripe_processing_fee
from ..payments.repository import PaymentRepository
from ..payments.stripe_service import PaymentProviderError, StripeService
from .limits import DamageClaimLimitsService, format_dollars
from .repository import DamageClaimRepository
from .schemas import AdminDecision, DamageClaimCreate, DamageClaimUpdate, EvidenceCreate

logger = logging.getLogger(__name__)

INELIGIBLE_BOOKING_STATUSES = ("cancelled", "rejected", "refunded")
EVIDENCE_OPEN_STATUSES = ("draft", "submitted", "chef_disputed", "under_review")
CHARGEABLE_STATUSES = ("approved", "partially_approved", "chef_accepted")
MIN_EVIDENCE_ITEMS = 2
MIN_RESPONSE_LENGTH = 10


def display_name(user: Optional[User], fallback: str) -> str:
    if not user:
        return fallback
    return user.full_name or user.username or user.email or fallback


def evidence_to_response(e: DamageEvidence) -> dict:
    return {
        "id": e.id,
        "claimId": e.damage_claim_id,
        "evidenceType": e.evidence_type,
        "fileUrl": e.file_url,
        "fileName": e.file_name,
        "fileSize": e.file_size,
        "mimeType": e.mime_type,
        "description": e.description,
        "uploadedBy": e.uploaded_by,
        "amountCents": e.amount_cents,
        "vendorName": e.vendor_name,
        "createdAt": e.created_at,
    }


def history_to_response(h: DamageClaimHistory) -> dict:
    return {
        "id": h.id,
        "previousStatus": h.previous_status,
        "newStatus": h.new_status,
        "action": h.action,
        "actionBy": h.action_by,
        "actionByUserId": h.action_by_user_id,
        "notes": h.notes,
        "metadata": h.history_metadata or {},
        "createdAt": h.created_at,
    }


def claim_to_response(c: DamageClaim, include_evidence: bool = False) -> dict:
    data = {
        "id": c.id,
        "bookingType": c.booking_type,
        "kitchenBookingId": c.kitchen_booking_id,
        "storageBookingId": c.storage_booking_id,
        "chefId": c.chef_id,
        "managerId": c.manager_id,
        "locationId": c.location_id,
        "chefName": display_name(c.chef, "Chef"),
        "managerName": display_name(c.manager, "Manager"),
        "locationName": c.location.name if c.location else None,
        "claimTitle": c.claim_title,
        "claimDescription": c.claim_description,
        "damageDate": c.damage_date,
        "damagedItems": c.damaged_items or [],
        "claimedAmountCents": c.claimed_amount_cents,
        "approvedAmountCents": c.approved_amount_cents,
        "finalAmountCents": c.final_amount_cents,
        "status": c.status,
        "submittedAt": c.submitted_at,
        "chefResponse": c.chef_response,
        "chefRespondedAt": c.chef_responded_at,
        "chefResponseDeadline": c.chef_response_deadline,
        "adminDecisionReason": c.admin_decision_reason,
        "adminReviewedAt": c.admin_reviewed_at,
        "chargeSucceededAt": c.charge_succeeded_at,
        "chargeFailureReason": c.charge_failure_reason,
        "refundedAmountCents": c.refunded_amount_cents or 0,
        "resolutionType": c.resolution_type,
        "resolutionNotes": c.resolution_notes,
        "resolvedAt": c.resolved_at,
        "createdAt": c.created_at,
    }
    if include_evidence:
        data["evidence"] = [evidence_to_response(e) for e in c.evidence]
    return data


class DamageClaimService:
    """Service layer for damage claims"""

    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        self.db = db
        self.repo = DamageClaimRepository()
        self.payments = PaymentRepository()
        self.limits = DamageClaimLimitsService(db)
        self.stripe = stripe_service or StripeService()

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _add_history(
        self,
        claim: DamageClaim,
        previous_status: Optional[str],
        new_status: str,
        action: str,
        action_by: str,
        user_id: Optional[int] = None,
        notes: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        self.db.add(
            DamageClaimHistory(
                damage_claim_id=claim.id,
                previous_status=previous_status,
                new_status=new_status,
                action=action,
                action_by=action_by,
                action_by_user_id=user_id,
                notes=notes,
                history_metadata=metadata or {},
            )
        )

    def _get_claim(self, claim_id: int) -> DamageClaim:
        claim = self.repo.get_claim(self.db, claim_id)
        if not claim:
            raise HTTPException(status_code=404, detail="Damage claim not found")
        return claim

    def _get_manager_claim(self, claim_id: int, manager: User) -> DamageClaim:
        claim = self._get_claim(claim_id)
        if claim.manager_id != manager.id:
            raise HTTPException(status_code=403, detail="Access denied to this claim")
        return claim

    def _get_payment_details(self, claim: DamageClaim) -> tuple[Optional[str], Optional[str]]:
        """Saved customer and card from the booking the claim is about"""
        if claim.booking_type == "storage" and claim.storage_booking_id:
            booking = self.repo.get_storage_booking(self.db, claim.storage_booking_id)
            if booking:
                return booking.stripe_customer_id, booking.stripe_payment_method_id
            return None, None

        if claim.kitchen_booking_id:
            booking = self.repo.get_kitchen_booking(self.db, claim.kitchen_booking_id)
            if booking and booking.stripe_customer_id and booking.stripe_payment_method_id:
                return booking.stripe_customer_id, booking.stripe_payment_method_id
            storage = self.repo.get_storage_booking_with_payment(self.db, claim.kitchen_booking_id)
            if storage:
                logger.info(f"Using storage booking {storage.id} card for kitchen claim {claim.id}")
                return storage.stripe_customer_id, storage.stripe_payment_method_id
        return None, None

    async def _notify_chef_filed(self, claim: DamageClaim) -> None:
        await notify(
            "damage_claim_filed",
            send_damage_claim_filed_email,
            to=claim.chef.email if claim.chef else None,
            chef_name=display_name(claim.chef, "Chef"),
            location_name=claim.location.name if claim.location else "your kitchen",
            claim_title=claim.claim_title,
            amount_cents=claim.claimed_amount_cents,
            deadline=claim.chef_response_deadline.strftime("%b %d, %Y %H:%M UTC"),
        )

    async def _notify_decision(self, claim: DamageClaim, decision: str, reason: str, manager_reason: str = None):
        for recipient, text in ((claim.chef, reason), (claim.manager, manager_reason or reason)):
            await notify(
                "damage_claim_decision",
                send_damage_claim_decision_email,
                to=recipient.email if recipient else None,
                recipient_name=display_name(recipient, "there"),
                claim_title=claim.claim_title,
                decision=decision,
                claimed_cents=claim.claimed_amount_cents,
                final_cents=claim.final_amount_cents or 0,
                reason=text,
            )

    async def _auto_charge(self, claim: DamageClaim) -> dict:
        result = await self.charge_approved_claim(claim.id)
        if result["success"]:
            logger.info(f"✅ Auto-charged damage claim {claim.id}")
        else:
            logger.warning(f"⚠️ Auto-charge failed for damage claim {claim.id}: {result.get('error')}")
        return result

    # ========================================================================
    # MANAGER: CREATE / EDIT / SUBMIT
    # ========================================================================

    async def create_damage_claim(self, manager: User, data: DamageClaimCreate) -> dict:
        logger.info(f"📥 Damage claim from manager {manager.id} on {data.bookingType} booking")
        amount_error = self.limits.validate_claim_amount(data.claimedAmountCents)
        if amount_error:
            raise HTTPException(status_code=400, detail=amount_error)

        limits = self.limits.get_limits()
        booking_id = data.storageBookingId if data.bookingType == "storage" else data.kitchenBookingId
        if self.repo.count_claims_for_booking(self.db, data.bookingType, booking_id) >= limits["maxClaimsPerBooking"]:
            raise HTTPException(
                status_code=409,
                detail=f"Maximum of {limits['maxClaimsPerBooking']} claims per booking reached",
            )

        if data.bookingType == "storage":
            booking = self.repo.get_storage_booking(self.db, booking_id)
            if not booking:
                raise HTTPException(status_code=404, detail="Storage booking not found")
            location = booking.storage_listing.kitchen.location
            booking_end = booking.end_date.date()
        else:
            booking = self.repo.get_kitchen_booking(self.db, booking_id)
            if not booking:
                raise HTTPException(status_code=404, detail="Kitchen booking not found")
            location = booking.kitchen.location
            booking_end = booking.booking_date

        if booking.status in INELIGIBLE_BOOKING_STATUSES:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Cannot file damage claim for a {booking.status} booking. "
                    "Only active or completed bookings are eligible."
                ),
            )
        if location.manager_id != manager.id:
            raise HTTPException(status_code=403, detail="Access denied to this booking")

        deadline_days = limits["claimSubmissionDeadlineDays"]
        if data.damageDate > booking_end + timedelta(days=deadline_days):
            raise HTTPException(
                status_code=400,
                detail=f"Damage must be claimed within {deadline_days} days after the booking",
            )
        if not booking.chef_id:
            raise HTTPException(status_code=400, detail="Chef not found for this booking")

        now = datetime.utcnow()
        status = "submitted" if data.submitImmediately else "draft"
        claim = DamageClaim(
            booking_type=data.bookingType,
            kitchen_booking_id=data.kitchenBookingId if data.bookingType == "kitchen" else None,
            storage_booking_id=data.storageBookingId if data.bookingType == "storage" else None,
            chef_id=booking.chef_id,
            manager_id=manager.id,
            location_id=location.id,
            claim_title=data.claimTitle.strip(),
            claim_description=data.claimDescription.strip(),
            damage_date=data.damageDate,
            damaged_items=data.damagedItems,
            claimed_amount_cents=data.claimedAmountCents,
            status=status,
            chef_response_deadline=now + timedelta(hours=limits["chefResponseDeadlineHours"]),
        )
        self.repo.add(self.db, claim)
        if data.submitImmediately:
            claim.submitted_at = now
            claim.stripe_customer_id, claim.stripe_payment_method_id = self._get_payment_details(claim)

        self._add_history(
            claim,
            None,
            status,
            "submitted" if data.submitImmediately else "created",
            "manager",
            manager.id,
            "Damage claim created and submitted to chef" if data.submitImmediately else "Damage claim created as draft",
        )
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"✅ Damage claim {claim.id} created ({status})")

        if data.submitImmediately:
            await self._notify_chef_filed(claim)
        return claim_to_response(claim, include_evidence=True)

    def update_draft_claim(self, manager: User, claim_id: int, data: DamageClaimUpdate) -> dict:
        claim = self._get_manager_claim(claim_id, manager)
        if claim.status != "draft":
            raise HTTPException(status_code=400, detail="Can only update draft claims")

        if data.claimedAmountCents is not None:
            amount_error = self.limits.validate_claim_amount(data.claimedAmountCents)
            if amount_error:
                raise HTTPException(status_code=400, detail=amount_error)
            claim.claimed_amount_cents = data.claimedAmountCents
        if data.claimTitle is not None:
            claim.claim_title = data.claimTitle.strip()
        if data.claimDescription is not None:
            claim.claim_description = data.claimDescription.strip()
        if data.damageDate is not None:
            claim.damage_date = data.damageDate
        if data.damagedItems is not None:
            claim.damaged_items = data.damagedItems
        self.db.commit()
        self.db.refresh(claim)
        return claim_to_response(claim, include_evidence=True)

    def delete_draft_claim(self, manager: User, claim_id: int) -> dict:
        claim = self._get_manager_claim(claim_id, manager)
        if claim.status != "draft":
            raise HTTPException(status_code=400, detail="Can only delete draft claims")
        self.repo.delete(self.db, claim)
        self.db.commit()
        logger.info(f"✅ Draft damage claim {claim_id} deleted")
        return {"success": True}

    async def submit_claim(self, manager: User, claim_id: int) -> dict:
        claim = self._get_manager_claim(claim_id, manager)
        if claim.status != "draft":
            raise HTTPException(status_code=400, detail="Can only submit draft claims")
        if self.repo.count_evidence(self.db, claim.id) < MIN_EVIDENCE_ITEMS:
            raise HTTPException(
                status_code=400, detail=f"Minimum {MIN_EVIDENCE_ITEMS} pieces of evidence required"
            )

        limits = self.limits.get_limits()
        now = datetime.utcnow()
        claim.stripe_customer_id, claim.stripe_payment_method_id = self._get_payment_details(claim)
        claim.status = "submitted"
        claim.submitted_at = now
        claim.chef_response_deadline = now + timedelta(hours=limits["chefResponseDeadlineHours"])
        self._add_history(claim, "draft", "submitted", "submitted", "manager", manager.id, "Claim submitted to chef")
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"✅ Damage claim {claim.id} submitted, chef has until {claim.chef_response_deadline}")

        await self._notify_chef_filed(claim)
        return claim_to_response(claim, include_evidence=True)

    # ========================================================================
    # EVIDENCE
    # ========================================================================

    def add_evidence(self, user: User, claim_id: int, data: EvidenceCreate) -> dict:
        claim = self._get_claim(claim_id)
        if claim.status not in EVIDENCE_OPEN_STATUSES:
            raise HTTPException(status_code=400, detail="Cannot add evidence to claim in current status")

        is_manager = claim.manager_id == user.id
        is_disputing_chef = claim.chef_id == user.id and claim.status in ("chef_disputed", "under_review")
        if not (is_manager or is_disputing_chef):
            raise HTTPException(status_code=403, detail="Access denied to this claim")

        evidence = self.repo.add(
            self.db,
            DamageEvidence(
                damage_claim_id=claim.id,
                evidence_type=data.evidenceType,
                file_url=data.fileUrl,
                file_name=data.fileName,
                file_size=data.fileSize,
                mime_type=data.mimeType,
                description=data.description,
                uploaded_by=user.id,
                amount_cents=data.amountCents,
                vendor_name=data.vendorName,
            ),
        )
        self.db.commit()
        self.db.refresh(evidence)
        logger.info(f"✅ Evidence {evidence.id} ({evidence.evidence_type}) added to claim {claim.id}")
        return evidence_to_response(evidence)

    def remove_evidence(self, manager: User, claim_id: int, evidence_id: int) -> dict:
        claim = self._get_manager_claim(claim_id, manager)
        evidence = self.repo.get_evidence(self.db, evidence_id)
        if not evidence or evidence.damage_claim_id != claim.id:
            raise HTTPException(status_code=404, detail="Evidence not found")
        if claim.status != "draft":
            raise HTTPException(status_code=400, detail="Can only remove evidence from draft claims")
        self.repo.delete(self.db, evidence)
        self.db.commit()
        return {"success": True}

    # ========================================================================
    # CHEF RESPONSE
    # ========================================================================

    async def chef_respond(self, chef: User, claim_id: int, action: str, response: str) -> dict:
        claim = self._get_claim(claim_id)
        if claim.chef_id != chef.id:
            raise HTTPException(status_code=403, detail="Access denied to this claim")
        if claim.status != "submitted":
            raise HTTPException(status_code=400, detail="Can only respond to submitted claims")
        if action not in ("accept", "dispute"):
            raise HTTPException(status_code=400, detail="Action must be 'accept' or 'dispute'")
        response = (response or "").strip()
        if len(response) < MIN_RESPONSE_LENGTH:
            raise HTTPException(
                status_code=400, detail=f"Response must be at least {MIN_RESPONSE_LENGTH} characters"
            )

        claim.chef_response = response
        claim.chef_responded_at = datetime.utcnow()
        if action == "accept":
            claim.approved_amount_cents = claim.claimed_amount_cents
            claim.final_amount_cents = claim.claimed_amount_cents
            self._add_history(
                claim, "submitted", "chef_accepted", "chef_response", "chef", chef.id, f"Chef accepted claim: {response}"
            )
            self._add_history(
                claim, "chef_accepted", "approved", "auto_approved", "system", None,
                "Claim auto-approved after chef acceptance",
            )
            claim.status = "approved"
        else:
            self._add_history(
                claim, "submitted", "chef_disputed", "chef_response", "chef", chef.id, f"Chef disputed claim: {response}"
            )
            self._add_history(
                claim, "chef_disputed", "under_review", "escalated_to_admin", "system", None,
                "Disputed claim escalated to admin for review",
            )
            claim.status = "under_review"
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"✅ Chef {chef.id} {action}ed damage claim {claim.id}")

        await notify(
            "damage_claim_response",
            send_damage_claim_response_email,
            to=claim.manager.email if claim.manager else None,
            manager_name=display_name(claim.manager, "Manager"),
            chef_name=display_name(chef, "Chef"),
            claim_title=claim.claim_title,
            amount_cents=claim.claimed_amount_cents,
            accepted=action == "accept",
            response=response,
        )

        charge = None
        if action == "accept":
            charge = await self._auto_charge(claim)
        else:
            await notify(
                "damage_claim_disputed",
                send_damage_claim_disputed_admin_email,
                to=ADMIN_EMAIL,
                claim_id=claim.id,
                claim_title=claim.claim_title,
                location_name=claim.location.name if claim.location else "Unknown location",
                chef_name=display_name(chef, "Chef"),
                amount_cents=claim.claimed_amount_cents,
                response=response,
            )

        self.db.refresh(claim)
        result = claim_to_response(claim)
        if charge is not None:
            result["charge"] = charge
        return result

    # ========================================================================
    # ADMIN
    # ========================================================================

    async def admin_decision(self, admin: User, claim_id: int, data: AdminDecision) -> dict:
        claim = self._get_claim(claim_id)
        if claim.status != "under_review":
            raise HTTPException(status_code=400, detail="Can only review claims under review")

        now = datetime.utcnow()
        if data.decision == "approve":
            new_status = "approved"
            final_amount = claim.claimed_amount_cents
        elif data.decision == "partially_approve":
            amount = data.approvedAmountCents
            if not amount or amount <= 0:
                raise HTTPException(status_code=400, detail="Approved amount required for partial approval")
            if amount > claim.claimed_amount_cents:
                raise HTTPException(status_code=400, detail="Approved amount cannot exceed the claimed amount")
            new_status = "partially_approved"
            final_amount = amount
        elif data.decision == "reject":
            new_status = "rejected"
            final_amount = 0
            claim.resolved_at = now
        else:
            raise HTTPException(status_code=400, detail="Invalid decision")

        claim.status = new_status
        claim.approved_amount_cents = final_amount
        claim.final_amount_cents = final_amount
        claim.admin_reviewer_id = admin.id
        claim.admin_reviewed_at = now
        claim.admin_decision_reason = data.decisionReason
        claim.admin_notes = data.notes
        self._add_history(
            claim,
            "under_review",
            new_status,
            "admin_decision",
            "admin",
            admin.id,
            data.decisionReason,
            {"decision": data.decision, "finalAmountCents": final_amount},
        )
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"✅ Admin {admin.id} decided claim {claim.id}: {new_status} ({final_amount} cents)")

        await self._notify_decision(claim, new_status, data.decisionReason)

        charge = None
        if new_status in ("approved", "partially_approved"):
            charge = await self._auto_charge(claim)
            self.db.refresh(claim)
        result = claim_to_response(claim)
        if charge is not None:
            result["charge"] = charge
        return result

    # ========================================================================
    # CHARGING
    # ========================================================================

    def _mark_charge_failed(self, claim: DamageClaim, reason: str, previous_status: str) -> dict:
        claim.status = "charge_failed"
        claim.charge_failed_at = datetime.utcnow()
        claim.charge_failure_reason = reason
        self._add_history(claim, previous_status, "charge_failed", "charge_attempt", "system", None, reason)
        self.db.commit()
        return {"success": False, "error": reason}

    async def charge_approved_claim(self, claim_id: int) -> dict:
        """Charge the chef's saved card for an approved claim"""
        claim = self._get_claim(claim_id)
        if claim.status not in CHARGEABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot charge claim in status: {claim.status}")
        amount = claim.final_amount_cents or 0
        if amount <= 0:
            raise HTTPException(status_code=400, detail="No amount to charge")

        customer_id, payment_method_id = self._get_payment_details(claim)
        if not customer_id or not payment_method_id:
            return self._mark_charge_failed(claim, "No saved payment method available", claim.status)

        destination = claim.manager.stripe_connect_account_id if claim.manager else None
        application_fee = calculate_stripe_processing_fee(amount) if destination else 0

        previous_status = claim.status
        claim.status = "charge_pending"
        claim.charge_attempted_at = datetime.utcnow()
        claim.stripe_customer_id = customer_id
        claim.stripe_payment_method_id = payment_method_id
        self._add_history(claim, previous_status, "charge_pending", "charge_attempt", "system", None, "Charging chef")
        self.db.commit()

        logger.info(f"💳 Charging {amount} cents for damage claim {claim.id}")
        try:
            intent = self.stripe.create_off_session_charge(
                amount=amount,
                customer_id=customer_id,
                payment_method_id=payment_method_id,
                metadata={
                    "type": "damage_claim",
                    "damage_claim_id": claim.id,
                    "booking_type": claim.booking_type,
                    "chef_id": claim.chef_id,
                    "manager_id": claim.manager_id,
                },
                statement_descriptor_suffix="DAMAGE CLAIM",
                idempotency_key=f"damage_claim_{claim.id}_{datetime.utcnow().date().isoformat()}",
                destination_account_id=destination,
                application_fee=application_fee,
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Damage claim {claim.id} charge failed: {e}")
            return self._mark_charge_failed(claim, str(e), "charge_pending")

        if intent.status != "succeeded":
            claim.stripe_payment_intent_id = intent.id
            return self._mark_charge_failed(claim, f"Payment status: {intent.status}", "charge_pending")

        charge = intent.latest_charge
        charge_id = charge if isinstance(charge, str) or charge is None else charge.id
        now = datetime.utcnow()
        claim.status = "charge_succeeded"
        claim.stripe_payment_intent_id = intent.id
        claim.stripe_charge_id = charge_id
        claim.charge_succeeded_at = now
        claim.resolved_at = now
        claim.resolution_type = "paid"
        self._add_history(
            claim,
            "charge_pending",
            "charge_succeeded",
            "charge_attempt",
            "system",
            None,
            f"Payment successful: {intent.id}",
            {"paymentIntentId": intent.id, "chargeId": charge_id},
        )
        self.payments.create_transaction(
            self.db,
            commit=False,
            booking_id=claim.id,
            booking_type="damage_claim",
            chef_id=claim.chef_id,
            manager_id=claim.manager_id,
            amount=amount,
            base_amount=amount,
            service_fee=application_fee,
            manager_revenue=amount - application_fee,
            net_amount=amount - application_fee,
            stripe_processing_fee=application_fee,
            status="succeeded",
            payment_intent_id=intent.id,
            charge_id=charge_id,
            paid_at=now,
            transaction_metadata={
                "type": "damage_claim",
                "damageClaimId": claim.id,
                "sourceBookingType": claim.booking_type,
                "noTax": True,
            },
        )
        self.db.commit()
        logger.info(f"✅ Damage claim {claim.id} charged: {intent.id}")

        await notify(
            "damage_claim_charged",
            send_damage_claim_charged_email,
            to=claim.chef.email if claim.chef else None,
            chef_name=display_name(claim.chef, "Chef"),
            claim_title=claim.claim_title,
            amount_cents=amount,
        )
        return {"success": True, "paymentIntentId": intent.id, "chargeId": charge_id}

    async def retry_charge(self, manager: User, claim_id: int) -> dict:
        claim = self._get_manager_claim(claim_id, manager)
        if claim.status != "charge_failed":
            raise HTTPException(status_code=400, detail="Only failed charges can be retried")
        claim.status = "approved"
        self._add_history(claim, "charge_failed", "approved", "charge_retry", "manager", manager.id, "Charge retried")
        self.db.commit()
        return await self.charge_approved_claim(claim.id)

    def resolve_claim(self, manager: User, claim_id: int, resolution_type: str, notes: Optional[str]) -> dict:
        """Close a claim whose charge failed without charging through the platform"""
        claim = self._get_manager_claim(claim_id, manager)
        if claim.status != "charge_failed":
            raise HTTPException(status_code=400, detail="Only claims with a failed charge can be resolved manually")
        if resolution_type not in ("paid_manually", "waived"):
            raise HTTPException(status_code=400, detail="Resolution must be 'paid_manually' or 'waived'")

        claim.status = "resolved"
        claim.resolution_type = resolution_type
        claim.resolution_notes = notes
        claim.resolved_at = datetime.utcnow()
        self._add_history(claim, "charge_failed", "resolved", resolution_type, "manager", manager.id, notes)
        self.db.commit()
        self.db.refresh(claim)
        return claim_to_response(claim)

    async def refund_damage_claim(
        self, admin: User, claim_id: int, amount_cents: Optional[int], reason: str
    ) -> dict:
        claim = self._get_claim(claim_id)
        if claim.status != "charge_succeeded":
            raise HTTPException(
                status_code=400,
                detail=f"Cannot refund claim in status '{claim.status}'. Only 'charge_succeeded' claims can be refunded.",
            )
        if not claim.stripe_payment_intent_id:
            raise HTTPException(
                status_code=400,
                detail="No payment intent found for this claim. Manual refund required in Stripe Dashboard.",
            )

        charged = claim.final_amount_cents or claim.approved_amount_cents or claim.claimed_amount_cents
        refund_amount = charged if amount_cents is None else amount_cents
        if refund_amount <= 0:
            raise HTTPException(status_code=400, detail="Refund amount must be greater than 0")
        if refund_amount > charged:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Refund amount ({format_dollars(refund_amount)}) cannot exceed "
                    f"charged amount ({format_dollars(charged)})"
                ),
            )

        try:
            refund = self.stripe.create_refund(
                claim.stripe_payment_intent_id,
                refund_amount,
                "requested_by_customer",
                metadata={"damage_claim_id": claim.id, "refund_reason": reason, "refunded_by": admin.id},
                reverse_transfer=bool(claim.manager and claim.manager.stripe_connect_account_id),
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Refund failed for damage claim {claim.id}: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e

        is_full = refund_amount >= charged
        now = datetime.utcnow()
        notes = f"{'Full' if is_full else 'Partial'} refund of {format_dollars(refund_amount)} issued. Reason: {reason}"
        claim.status = "resolved"
        claim.resolution_type = "refunded" if is_full else "partially_refunded"
        claim.resolution_notes = notes
        claim.resolved_at = now
        claim.stripe_refund_id = refund.id
        claim.refunded_amount_cents = refund_amount
        claim.refunded_at = now
        claim.refund_reason = reason
        self._add_history(
            claim,
            "charge_succeeded",
            "resolved",
            "refund",
            "admin",
            admin.id,
            notes,
            {"refundId": refund.id, "refundAmount": refund_amount, "chargedAmount": charged, "isFullRefund": is_full},
        )
        transaction = self.payments.get_transaction_by_intent_id(self.db, claim.stripe_payment_intent_id)
        if transaction:
            self.payments.update_transaction(
                self.db,
                transaction,
                commit=False,
                status="refunded" if is_full else "partially_refunded",
                refund_amount=refund_amount,
                refund_id=refund.id,
                refund_reason=reason,
                refunded_at=now,
            )
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"✅ Refunded {refund_amount} cents on damage claim {claim.id}")

        await notify(
            "damage_claim_refunded",
            send_damage_claim_refunded_email,
            to=claim.chef.email if claim.chef else None,
            chef_name=display_name(claim.chef, "Chef"),
            claim_title=claim.claim_title,
            amount_cents=refund_amount,
        )
        return {"success": True, "refundId": refund.id, "claim": claim_to_response(claim)}

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_manager_claims(self, manager: User, include_all: bool = False) -> list[dict]:
        return [claim_to_response(c) for c in self.repo.get_manager_claims(self.db, manager.id, include_all)]

    def get_chef_claims(self, chef: User) -> list[dict]:
        return [claim_to_response(c) for c in self.repo.get_chef_claims(self.db, chef.id)]

    def get_disputed_claims(self) -> list[dict]:
        return [claim_to_response(c, include_evidence=True) for c in self.repo.get_claims_by_status(self.db, "under_review")]

    def _check_access(self, claim: DamageClaim, user: User) -> None:
        if user.role == "admin" or claim.manager_id == user.id:
            return
        if claim.chef_id == user.id and claim.status != "draft":
            return
        raise HTTPException(status_code=403, detail="Access denied to this claim")

    def get_claim_by_id(self, user: User, claim_id: int) -> dict:
        claim = self._get_claim(claim_id)
        self._check_access(claim, user)
        return claim_to_response(claim, include_evidence=True)

    def get_claim_history(self, user: User, claim_id: int) -> list[dict]:
        claim = self._get_claim(claim_id)
        self._check_access(claim, user)
        return [history_to_response(h) for h in self.repo.get_history(self.db, claim.id)]

    def has_chef_unpaid_claims(self, chef_id: int) -> bool:
        return bool(self.repo.get_unpaid_claims(self.db, chef_id))

    def get_chef_unpaid_claims(self, chef_id: int) -> dict:
        claims = self.repo.get_unpaid_claims(self.db, chef_id)
        return {
            "hasUnpaidClaims": bool(claims),
            "totalOwedCents": sum(c.final_amount_cents or c.claimed_amount_cents or 0 for c in claims),
            "claims": [claim_to_response(c) for c in claims],
        }

    # ========================================================================
    # SCHEDULED
    # ========================================================================

    async def process_expired_claims(self, now: Optional[datetime] = None) -> list[dict]:
        """Auto-approve submitted claims the chef let expire, then charge them"""
        now = now or datetime.utcnow()
        results = []
        for claim in self.repo.get_expired_submitted_claims(self.db, now):
            claim.status = "approved"
            claim.approved_amount_cents = claim.claimed_amount_cents
            claim.final_amount_cents = claim.claimed_amount_cents
            self._add_history(
                claim,
                "submitted",
                "approved",
                "deadline_expired",
                "system",
                None,
                "Chef did not respond by deadline - claim auto-approved",
            )
            self.db.commit()
            logger.info(f"⏰ Damage claim {claim.id} auto-approved after deadline")

            await self._notify_decision(
                claim,
                "approved",
                "You did not respond by the deadline. The claim has been automatically approved.",
                manager_reason="The chef did not respond by the deadline. The claim has been automatically approved.",
            )

            entry = {"claim_id": claim.id, "charged": False}
            try:
                charge = await self.charge_approved_claim(claim.id)
            except HTTPException as e:
                entry["error"] = e.detail
            else:
                entry["charged"] = charge["success"]
                if not charge["success"]:
                    entry["error"] = charge.get("error")
            results.append(entry)

        logger.info(f"✅ Processed {len(results)} expired damage claims")
        return results
