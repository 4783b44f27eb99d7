"""Stripe service - Thin wrapper over the Stripe SDK for authorise/capture/refund flows"""

import logging
from typing import Optional

import stripe

from ...config import STRIPE_CURRENCY, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET

logger = logging.getLogger(__name__)

REFUND_REASONS = ("duplicate", "fraudulent", "requested_by_customer")


class PaymentProviderError(Exception):
    """Raised when a Stripe call fails; carries the Stripe message"""


def _stripe_metadata(metadata: Optional[dict]) -> dict:
    # Stripe metadata values must be strings
    return {key: "" if value is None else str(value) for key, value in (metadata or {}).items()}


class StripeService:
    """Service for Stripe API operations"""

    def __init__(self):
        self.api_key = STRIPE_SECRET_KEY
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; payment operations will fail until configured")
        else:
            stripe.api_key = self.api_key

    def _ensure_configured(self):
        if not self.api_key:
            raise PaymentProviderError(
                "Stripe is not configured. Please set STRIPE_SECRET_KEY environment variable."
            )

    def create_authorization(
        self,
        amount: int,
        customer_id: Optional[str],
        payment_method_id: Optional[str],
        metadata: dict,
        destination_account_id: Optional[str] = None,
        application_fee: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ):
        """Create a manual-capture PaymentIntent that only holds the funds"""
        self._ensure_configured()
        params = {
            "amount": amount,
            "currency": STRIPE_CURRENCY,
            "capture_method": "manual",
            "metadata": _stripe_metadata(metadata),
        }
        if customer_id:
            params["customer"] = customer_id
        if payment_method_id:
            params["payment_method"] = payment_method_id
            params["setup_future_usage"] = "off_session"
        if destination_account_id:
            params["transfer_data"] = {"destination": destination_account_id}
            if application_fee:
                params["application_fee_amount"] = application_fee
        try:
            intent = stripe.PaymentIntent.create(**params, idempotency_key=idempotency_key)
            logger.info(f"💳 Created PaymentIntent {intent.id} for {amount} cents (manual capture)")
            return intent
        except stripe.StripeError as e:
            logger.error(f"❌ Error creating PaymentIntent: {e}")
            raise PaymentProviderError(f"Failed to create payment intent: {e.user_message or str(e)}") from e

    def retrieve_payment_intent(self, payment_intent_id: str):
        self._ensure_configured()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"❌ Error retrieving PaymentIntent {payment_intent_id}: {e}")
            raise PaymentProviderError(f"Failed to retrieve payment intent: {str(e)}") from e

    def capture_payment_intent(
        self,
        payment_intent_id: str,
        amount_to_capture: Optional[int] = None,
        application_fee_amount: Optional[int] = None,
    ):
        """
        Capture an authorised PaymentIntent.
        With amount_to_capture only that portion is charged and Stripe
        releases the remainder of the hold.
        """
        self._ensure_configured()
        params = {}
        if amount_to_capture is not None:
            params["amount_to_capture"] = amount_to_capture
        if application_fee_amount is not None:
            params["application_fee_amount"] = application_fee_amount
        try:
            intent = stripe.PaymentIntent.capture(payment_intent_id, **params)
            logger.info(f"💳 Captured PaymentIntent {payment_intent_id} ({intent.amount_received} cents)")
            return intent
        except stripe.StripeError as e:
            logger.error(f"❌ Error capturing PaymentIntent {payment_intent_id}: {e}")
            raise PaymentProviderError(f"Failed to capture payment intent: {str(e)}") from e

    def cancel_payment_intent(self, payment_intent_id: str):
        """Release an authorisation hold; nothing is charged"""
        self._ensure_configured()
        try:
            intent = stripe.PaymentIntent.cancel(payment_intent_id)
            logger.info(f"💳 Canceled PaymentIntent {payment_intent_id}")
            return intent
        except stripe.StripeError as e:
            logger.error(f"❌ Error canceling PaymentIntent {payment_intent_id}: {e}")
            raise PaymentProviderError(f"Failed to cancel payment intent: {str(e)}") from e

    def reverse_transfer_and_refund(
        self,
        payment_intent_id: str,
        amount: int,
        reason: str = "requested_by_customer",
        reverse_transfer_amount: Optional[int] = None,
        refund_application_fee: Optional[bool] = None,
        metadata: Optional[dict] = None,
        transfer_metadata: Optional[dict] = None,
    ) -> dict:
        """
        Pull the amount back from the manager's connected account, then
        refund the chef the same amount.
        """
        self._ensure_configured()
        if not amount or amount <= 0:
            raise PaymentProviderError("Refund amount must be greater than 0")
        if reason not in REFUND_REASONS:
            reason = "requested_by_customer"

        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge"])
            charge = intent.latest_charge
            if not charge:
                raise PaymentProviderError("Payment intent has no charge to refund")
            if isinstance(charge, str):
                charge = stripe.Charge.retrieve(charge)

            transfer = charge.transfer
            transfer_id = transfer if isinstance(transfer, str) or transfer is None else transfer.id
            if not transfer_id:
                raise PaymentProviderError("No transfer found for this charge to reverse")

            reversal_amount = reverse_transfer_amount if reverse_transfer_amount is not None else amount
            if reversal_amount <= 0:
                raise PaymentProviderError("Transfer reversal amount must be greater than 0")

            reversal = stripe.Transfer.create_reversal(
                transfer_id,
                amount=reversal_amount,
                metadata=_stripe_metadata(transfer_metadata or metadata),
            )

            refund_params = {"charge": charge.id, "amount": amount, "reason": reason}
            if refund_application_fee is not None:
                refund_params["refund_application_fee"] = refund_application_fee
            if metadata:
                refund_params["metadata"] = _stripe_metadata(metadata)
            refund = stripe.Refund.create(**refund_params)

            logger.info(
                f"💸 Refunded {refund.amount} cents on {payment_intent_id} (reversal {reversal.id})"
            )
            return {
                "refund_id": refund.id,
                "refund_amount": refund.amount,
                "refund_status": refund.status,
                "charge_id": charge.id,
                "transfer_reversal_id": reversal.id,
            }
        except stripe.StripeError as e:
            logger.error(f"❌ Error reversing transfer and refunding {payment_intent_id}: {e}")
            raise PaymentProviderError(f"Failed to reverse transfer and refund: {str(e)}") from e

    def create_refund(
        self,
        payment_intent_id: str,
        amount: int,
        reason: str = "requested_by_customer",
        metadata: Optional[dict] = None,
        reverse_transfer: bool = False,
    ):
        self._ensure_configured()
        try:
            params = {
                "payment_intent": payment_intent_id,
                "amount": amount,
                "reason": reason if reason in REFUND_REASONS else "requested_by_customer",
                "metadata": _stripe_metadata(metadata),
            }
            if reverse_transfer:
                params["reverse_transfer"] = True
            return stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"❌ Error refunding {payment_intent_id}: {e}")
            raise PaymentProviderError(f"Stripe error: {str(e)}") from e

    def create_off_session_charge(
        self,
        amount: int,
        customer_id: str,
        payment_method_id: str,
        metadata: dict,
        statement_descriptor_suffix: str,
        idempotency_key: str,
        destination_account_id: Optional[str] = None,
        application_fee: Optional[int] = None,
    ):
        """Charge a saved card without the customer present"""
        self._ensure_configured()
        params = {
            "amount": amount,
            "currency": STRIPE_CURRENCY,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "off_session": True,
            "confirm": True,
            "metadata": _stripe_metadata(metadata),
            "statement_descriptor_suffix": statement_descriptor_suffix,
        }
        if destination_account_id:
            params["transfer_data"] = {"destination": destination_account_id}
            if application_fee and application_fee > 0:
                params["application_fee_amount"] = application_fee
        try:
            return stripe.PaymentIntent.create(**params, idempotency_key=idempotency_key)
        except stripe.CardError as e:
            logger.warning(f"⚠️ Off-session charge declined: {e.user_message}")
            raise PaymentProviderError(e.user_message or str(e)) from e
        except stripe.StripeError as e:
            logger.error(f"❌ Off-session charge failed: {e}")
            raise PaymentProviderError(str(e)) from e

    def construct_webhook_event(self, payload: bytes, signature: Optional[str]):
        if not STRIPE_WEBHOOK_SECRET:
            raise PaymentProviderError("STRIPE_WEBHOOK_SECRET not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise PaymentProviderError(f"Invalid webhook signature: {str(e)}") from e
