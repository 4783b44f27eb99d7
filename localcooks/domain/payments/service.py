"""Payment service - Manager refunds and Stripe webhook reconciliation"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import PaymentTransaction, User
from ...pricing import calculate_refund_breakdown
from .repository import PaymentRepository
from .stripe_service import PaymentProviderError, StripeService

logger = logging.getLogger(__name__)


def transaction_to_response(t: PaymentTransaction) -> dict:
    return {
        "id": t.id,
        "bookingId": t.booking_id,
        "bookingType": t.booking_type,
        "amount": t.amount or 0,
        "baseAmount": t.base_amount or 0,
        "serviceFee": t.service_fee or 0,
        "managerRevenue": t.manager_revenue or 0,
        "stripeProcessingFee": t.stripe_processing_fee or 0,
        "refundAmount": t.refund_amount or 0,
        "status": t.status,
        "currency": t.currency,
        "paymentIntentId": t.payment_intent_id,
        "paidAt": t.paid_at,
        "createdAt": t.created_at,
    }


class PaymentService:
    """Service layer for payment transactions"""

    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        self.db = db
        self.repo = PaymentRepository()
        self.stripe = stripe_service or StripeService()

    def get_manager_transactions(self, manager: User, status: Optional[str] = None) -> list[dict]:
        transactions = self.repo.get_manager_transactions(self.db, manager.id, status)
        return [transaction_to_response(t) for t in transactions]

    def refund_transaction(
        self, manager: User, transaction_id: int, amount: int, reason: Optional[str] = None
    ) -> dict:
        """
        Manager-initiated refund of a captured transaction.
        The chef receives exactly what is taken from the manager's balance.
        """
        logger.info(f"📥 Refund request for transaction {transaction_id} by manager {manager.id}: {amount} cents")
        if amount is None or amount <= 0:
            raise HTTPException(status_code=400, detail="Refund amount must be a positive number of cents")

        transaction = self.repo.get_transaction_by_id(self.db, transaction_id)
        if not transaction:
            raise HTTPException(status_code=404, detail="Transaction not found")
        if transaction.manager_id != manager.id:
            raise HTTPException(status_code=403, detail="Access denied to this transaction")
        if not transaction.payment_intent_id:
            raise HTTPException(status_code=400, detail="No payment intent linked to this transaction")
        if transaction.status not in ("succeeded", "partially_refunded"):
            raise HTTPException(
                status_code=400,
                detail=f"Refunds are only allowed for paid transactions. Current status: {transaction.status}",
            )

        already_refunded = transaction.refund_amount or 0
        manager_revenue = transaction.manager_revenue or 0
        breakdown = calculate_refund_breakdown(
            transaction.amount or 0,
            manager_revenue,
            already_refunded,
            transaction.stripe_processing_fee or 0,
        )
        if amount > breakdown["max_refundable"]:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Refund amount exceeds maximum. Max refundable: "
                    f"${breakdown['max_refundable'] / 100:.2f}"
                ),
            )

        if not manager.stripe_connect_account_id:
            raise HTTPException(status_code=400, detail="Manager Stripe Connect account not found")

        reason_text = reason.strip() if isinstance(reason, str) else None
        refund_metadata = {
            "transaction_id": transaction.id,
            "booking_id": transaction.booking_id,
            "booking_type": transaction.booking_type,
            "manager_id": manager.id,
            "refund_reason": reason_text or "",
            "refund_model": "unified",
            "customer_receives": amount,
            "manager_debited": amount,
        }
        try:
            refund = self.stripe.reverse_transfer_and_refund(
                transaction.payment_intent_id,
                amount,
                reason_text or "requested_by_customer",
                reverse_transfer_amount=amount,
                refund_application_fee=False,
                metadata=refund_metadata,
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Refund failed for transaction {transaction.id}: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e

        new_refund_total = already_refunded + amount
        new_status = "refunded" if new_refund_total >= manager_revenue else "partially_refunded"
        refund_entry = {
            "id": refund["refund_id"],
            "customerReceived": amount,
            "managerDebited": amount,
            "reason": reason_text,
            "createdAt": datetime.utcnow().isoformat(),
            "createdBy": manager.id,
            "transferReversalId": refund.get("transfer_reversal_id"),
        }
        metadata = dict(transaction.transaction_metadata or {})
        metadata["refunds"] = list(metadata.get("refunds") or []) + [refund_entry]
        metadata["lastRefund"] = refund_entry

        self.repo.update_transaction(
            self.db,
            transaction,
            commit=False,
            status=new_status,
            refund_amount=new_refund_total,
            refund_id=refund["refund_id"],
            refund_reason=reason_text,
            refunded_at=datetime.utcnow(),
            transaction_metadata=metadata,
        )
        self.repo.set_booking_payment_status(
            self.db, transaction.booking_type, transaction.booking_id, new_status
        )
        self.db.commit()
        logger.info(f"✅ Refunded {amount} cents on transaction {transaction.id} ({new_status})")

        after = calculate_refund_breakdown(
            transaction.amount or 0,
            manager_revenue,
            new_refund_total,
            transaction.stripe_processing_fee or 0,
        )
        return {
            "success": True,
            "refundId": refund["refund_id"],
            "status": new_status,
            "customerReceived": amount,
            "managerDebited": amount,
            "totalRefunded": new_refund_total,
            "remainingCharged": (transaction.amount or 0) - new_refund_total,
            "maxRefundable": after["max_refundable"],
            "managerRemainingBalance": after["remaining_manager_balance"],
            "originalStripeFee": transaction.stripe_processing_fee or 0,
            "transferReversalId": refund.get("transfer_reversal_id"),
        }

    # ========================================================================
    # WEBHOOKS
    # ========================================================================

    # event -> (booking status, statuses it may move a booking from,
    #           transaction status, statuses it may move a transaction from)
    WEBHOOK_TRANSITIONS = {
        "payment_intent.amount_capturable_updated": ("authorized", ("pending",), "processing", ("pending",)),
        "payment_intent.succeeded": (
            "paid",
            ("pending", "authorized", "processing"),
            "succeeded",
            ("pending", "processing"),
        ),
        "payment_intent.payment_failed": ("failed", ("pending", "authorized"), "failed", ("pending", "processing")),
        "payment_intent.canceled": ("failed", ("pending", "authorized"), "canceled", ("pending", "processing")),
    }

    def handle_webhook_event(self, event) -> dict:
        """
        Keep bookings and transactions in step with PaymentIntent state.
        Stripe may deliver events out of order, so each event only moves a
        row forward from the statuses listed for it.
        """
        event_type = event["type"]
        intent = event["data"]["object"]
        intent_id = intent["id"]

        if event_type not in self.WEBHOOK_TRANSITIONS:
            logger.debug(f"Ignoring Stripe event {event_type}")
            return {"received": True, "handled": False}

        booking_status, booking_from, transaction_status, transaction_from = self.WEBHOOK_TRANSITIONS[event_type]
        logger.info(f"📥 Stripe {event_type} for {intent_id}")

        booking = self.repo.get_kitchen_booking_by_intent(self.db, intent_id)
        bookings = [booking] if booking else []
        bookings += self.repo.get_storage_bookings_by_intent(self.db, intent_id)
        bookings += self.repo.get_equipment_bookings_by_intent(self.db, intent_id)
        for b in bookings:
            if b.payment_status in booking_from:
                b.payment_status = booking_status
            else:
                logger.info(f"⏭️ Keeping {type(b).__name__} {b.id} at {b.payment_status} for {event_type}")

        transaction = self.repo.get_transaction_by_intent_id(self.db, intent_id)
        if transaction and transaction.status in transaction_from:
            transaction.status = transaction_status
            if transaction_status == "succeeded":
                transaction.paid_at = transaction.paid_at or datetime.utcnow()
                charge_id = intent.get("latest_charge")
                if isinstance(charge_id, str):
                    transaction.charge_id = charge_id

        self.db.commit()
        return {"received": True, "handled": True}
