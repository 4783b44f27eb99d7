from unittest.mock import MagicMock

import pytest
import stripe
from fastapi import HTTPException

from localcooks.domain.payments.service import PaymentService
from localcooks.domain.payments.stripe_service import PaymentProviderError, StripeService


@pytest.fixture
def paid(make_booking):
    return make_booking(payment_status="paid", status="confirmed")


def test_manager_refund_debits_manager_balance(db, manager, stripe_mock, paid):
    booking, _, _, transaction = paid
    stripe_mock.reverse_transfer_and_refund.return_value = {"refund_id": "re_1", "transfer_reversal_id": "trr_1"}

    result = PaymentService(db, stripe_service=stripe_mock).refund_transaction(
        manager, transaction.id, 2000, "Late start"
    )

    args, kwargs = stripe_mock.reverse_transfer_and_refund.call_args
    assert args == ("pi_test", 2000, "Late start")
    assert kwargs["reverse_transfer_amount"] == 2000
    assert kwargs["refund_application_fee"] is False
    assert result["status"] == "partially_refunded"
    assert result["totalRefunded"] == 2000
    assert result["maxRefundable"] == transaction.manager_revenue - 2000
    assert result["transferReversalId"] == "trr_1"

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "partially_refunded"
    assert transaction.refund_amount == 2000
    assert transaction.transaction_metadata["lastRefund"]["id"] == "re_1"


def test_refund_of_whole_balance_marks_refunded(db, manager, stripe_mock, paid):
    _, _, _, transaction = paid
    stripe_mock.reverse_transfer_and_refund.return_value = {"refund_id": "re_2", "transfer_reversal_id": "trr_2"}

    result = PaymentService(db, stripe_service=stripe_mock).refund_transaction(
        manager, transaction.id, transaction.manager_revenue
    )

    assert result["status"] == "refunded"
    assert result["maxRefundable"] == 0


def test_refund_above_balance_is_rejected(db, manager, stripe_mock, paid):
    _, _, _, transaction = paid
    with pytest.raises(HTTPException) as exc:
        PaymentService(db, stripe_service=stripe_mock).refund_transaction(
            manager, transaction.id, transaction.manager_revenue + 1
        )
    assert exc.value.status_code == 400
    stripe_mock.reverse_transfer_and_refund.assert_not_called()


def test_refund_requires_captured_transaction(db, manager, stripe_mock, make_booking):
    _, _, _, transaction = make_booking(payment_status="authorized")
    with pytest.raises(HTTPException) as exc:
        PaymentService(db, stripe_service=stripe_mock).refund_transaction(manager, transaction.id, 100)
    assert exc.value.status_code == 400


def test_refund_by_other_manager(db, other_manager, stripe_mock, paid):
    _, _, _, transaction = paid
    with pytest.raises(HTTPException) as exc:
        PaymentService(db, stripe_service=stripe_mock).refund_transaction(other_manager, transaction.id, 100)
    assert exc.value.status_code == 403


def test_refund_provider_failure(db, manager, stripe_mock, paid):
    _, _, _, transaction = paid
    stripe_mock.reverse_transfer_and_refund.side_effect = PaymentProviderError("balance insufficient")
    with pytest.raises(HTTPException) as exc:
        PaymentService(db, stripe_service=stripe_mock).refund_transaction(manager, transaction.id, 100)
    assert exc.value.status_code == 500
    db.refresh(transaction)
    assert transaction.refund_amount == 0


def test_manager_transactions(db, manager, other_manager, stripe_mock, paid):
    service = PaymentService(db, stripe_service=stripe_mock)
    assert len(service.get_manager_transactions(manager)) == 1
    assert service.get_manager_transactions(manager, status="refunded") == []
    assert service.get_manager_transactions(other_manager) == []


# ============================================================================
# WEBHOOKS
# ============================================================================


def intent_event(event_type, intent_id="pi_test", **fields):
    return {"type": event_type, "data": {"object": {"id": intent_id, **fields}}}


def test_authorization_webhook_marks_booking_authorized(db, stripe_mock, make_booking):
    booking, storage, _, transaction = make_booking(payment_status="pending", storage_prices=[3000])

    result = PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(
        intent_event("payment_intent.amount_capturable_updated")
    )

    assert result == {"received": True, "handled": True}
    db.refresh(booking)
    db.refresh(storage[0])
    db.refresh(transaction)
    assert booking.payment_status == "authorized"
    assert storage[0].payment_status == "authorized"
    assert transaction.status == "processing"


def test_succeeded_webhook_records_charge(db, stripe_mock, make_booking):
    booking, _, _, transaction = make_booking(payment_status="authorized")

    PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(
        intent_event("payment_intent.succeeded", latest_charge="ch_9")
    )

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "paid"
    assert transaction.status == "succeeded"
    assert transaction.charge_id == "ch_9"
    assert transaction.paid_at is not None


def test_late_webhook_does_not_undo_refund(db, stripe_mock, make_booking):
    booking, _, _, transaction = make_booking(payment_status="refunded")
    transaction.status = "refunded"
    db.commit()

    PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(intent_event("payment_intent.succeeded"))

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "refunded"
    assert transaction.status == "refunded"


def test_late_authorization_webhook_leaves_captured_payment_refundable(db, manager, stripe_mock, paid):
    booking, _, _, transaction = paid
    service = PaymentService(db, stripe_service=stripe_mock)

    service.handle_webhook_event(intent_event("payment_intent.amount_capturable_updated"))

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "paid"
    assert transaction.status == "succeeded"

    stripe_mock.reverse_transfer_and_refund.return_value = {"refund_id": "re_3", "transfer_reversal_id": "trr_3"}
    result = service.refund_transaction(manager, transaction.id, 100)
    assert result["status"] == "partially_refunded"


def test_late_authorization_webhook_does_not_revive_released_hold(db, stripe_mock, make_booking):
    booking, storage, _, transaction = make_booking(
        payment_status="failed", status="cancelled", storage_prices=[3000]
    )
    transaction.status = "canceled"
    db.commit()

    PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(
        intent_event("payment_intent.amount_capturable_updated")
    )

    db.refresh(booking)
    db.refresh(storage[0])
    db.refresh(transaction)
    assert booking.payment_status == "failed"
    assert storage[0].payment_status == "failed"
    assert transaction.status == "canceled"


def test_succeeded_webhook_does_not_touch_canceled_transaction(db, stripe_mock, make_booking):
    booking, _, _, transaction = make_booking(payment_status="failed", status="cancelled")
    transaction.status = "canceled"
    db.commit()

    PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(intent_event("payment_intent.succeeded"))

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "failed"
    assert transaction.status == "canceled"
    assert transaction.paid_at is None


def test_canceled_webhook_does_not_touch_captured_payment(db, stripe_mock, paid):
    booking, _, _, transaction = paid

    PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(intent_event("payment_intent.canceled"))

    db.refresh(booking)
    db.refresh(transaction)
    assert booking.payment_status == "paid"
    assert transaction.status == "succeeded"


def test_unrelated_events_are_ignored(db, stripe_mock):
    result = PaymentService(db, stripe_service=stripe_mock).handle_webhook_event(
        intent_event("customer.created", intent_id="cus_1")
    )
    assert result == {"received": True, "handled": False}


# ============================================================================
# STRIPE WRAPPER
# ============================================================================


def test_stripe_service_without_key_refuses_calls(monkeypatch):
    monkeypatch.setattr("localcooks.domain.payments.stripe_service.STRIPE_SECRET_KEY", None)
    with pytest.raises(PaymentProviderError):
        StripeService().retrieve_payment_intent("pi_missing")


def test_reverse_transfer_and_refund(monkeypatch):
    monkeypatch.setattr("localcooks.domain.payments.stripe_service.STRIPE_SECRET_KEY", "sk_test_123")
    charge = MagicMock(id="ch_1", transfer="tr_1")
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", MagicMock(return_value=MagicMock(latest_charge=charge)))
    create_reversal = MagicMock(return_value=MagicMock(id="trr_1"))
    monkeypatch.setattr(stripe.Transfer, "create_reversal", create_reversal)
    refund_create = MagicMock(return_value=MagicMock(id="re_1", amount=2000, status="succeeded"))
    monkeypatch.setattr(stripe.Refund, "create", refund_create)

    result = StripeService().reverse_transfer_and_refund(
        "pi_test", 2000, "Late start", refund_application_fee=False, metadata={"booking_id": 7}
    )

    assert result["refund_id"] == "re_1"
    assert result["transfer_reversal_id"] == "trr_1"
    assert create_reversal.call_args.args == ("tr_1",)
    assert create_reversal.call_args.kwargs["amount"] == 2000
    refund_kwargs = refund_create.call_args.kwargs
    assert refund_kwargs["charge"] == "ch_1"
    assert refund_kwargs["reason"] == "requested_by_customer"
    assert refund_kwargs["refund_application_fee"] is False
    assert refund_kwargs["metadata"] == {"booking_id": "7"}


def test_reverse_transfer_needs_a_transfer(monkeypatch):
    monkeypatch.setattr("localcooks.domain.payments.stripe_service.STRIPE_SECRET_KEY", "sk_test_123")
    charge = MagicMock(id="ch_1", transfer=None)
    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", MagicMock(return_value=MagicMock(latest_charge=charge)))

    with pytest.raises(PaymentProviderError):
        StripeService().reverse_transfer_and_refund("pi_test", 2000)
