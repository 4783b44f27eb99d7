import asyncio
from datetime import date, datetime, time, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from localcooks.domain.bookings.schemas import BookingStatusUpdate, ItemAction, KitchenBookingCreate
from localcooks.domain.bookings.service import BookingService, booking_start_utc
from localcooks.domain.payments.stripe_service import PaymentProviderError


def captured_intent(intent_id="pi_test"):
    return MagicMock(id=intent_id, status="succeeded", latest_charge="ch_1")


# ============================================================================
# CREATION
# ============================================================================


def test_create_booking_authorizes_full_amount(
    db, chef, kitchen, storage_listing, equipment_listing, approved_application, stripe_mock, sent_emails
):
    stripe_mock.create_authorization.return_value = MagicMock(id="pi_new")
    booking_date = date.today() + timedelta(days=7)
    start = datetime.combine(booking_date, time(0, 0))
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=booking_date,
        startTime="10:00",
        endTime="12:00",
        paymentMethodId="pm_card",
        storageItems=[{"storageListingId": storage_listing.id, "startDate": start, "endDate": start + timedelta(days=3)}],
        equipmentItems=[{"equipmentListingId": equipment_listing.id}],
    )

    result = asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data))

    assert result["status"] == "pending"
    assert result["paymentIntentId"] == "pi_new"
    assert result["totalPrice"] == 15500
    assert len(result["storageItems"]) == 1
    assert len(result["equipmentItems"]) == 1
    kwargs = stripe_mock.create_authorization.call_args.kwargs
    assert kwargs["amount"] == 17515
    assert kwargs["application_fee"] == 538
    assert kwargs["destination_account_id"] == "acct_manager"
    assert sent_emails.await_count == 1


def test_create_booking_requires_approved_application(db, chef, kitchen, stripe_mock):
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=date.today() + timedelta(days=7),
        startTime="10:00",
        endTime="12:00",
        paymentMethodId="pm_card",
    )
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data))
    assert exc.value.status_code == 403
    stripe_mock.create_authorization.assert_not_called()


def test_create_booking_requires_tier_two(db, chef, kitchen, approved_application, stripe_mock):
    approved_application.current_tier = 1
    db.commit()
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=date.today() + timedelta(days=7),
        startTime="10:00",
        endTime="12:00",
        paymentMethodId="pm_card",
    )
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data))
    assert exc.value.status_code == 403
    stripe_mock.create_authorization.assert_not_called()


def test_create_booking_enforces_booking_window(db, chef, kitchen, approved_application, stripe_mock):
    booking_date = date.today() + timedelta(days=1)
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=booking_date,
        startTime="10:00",
        endTime="12:00",
        paymentMethodId="pm_card",
    )
    now = datetime.combine(booking_date, time(9, 30))
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data, now=now))
    assert exc.value.status_code == 400


def test_create_booking_enforces_daily_limit(db, chef, kitchen, approved_application, stripe_mock, make_booking):
    booking_date = date.today() + timedelta(days=7)
    make_booking(booking_date=booking_date, intent_id="pi_a")
    make_booking(booking_date=booking_date, intent_id="pi_b")
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=booking_date,
        startTime="14:00",
        endTime="16:00",
        paymentMethodId="pm_card",
    )
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data))
    assert exc.value.status_code == 409


def test_create_booking_provider_failure(db, chef, kitchen, approved_application, stripe_mock):
    stripe_mock.create_authorization.side_effect = PaymentProviderError("card_declined")
    data = KitchenBookingCreate(
        kitchenId=kitchen.id,
        bookingDate=date.today() + timedelta(days=7),
        startTime="10:00",
        endTime="12:00",
        paymentMethodId="pm_card",
    )
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).create_kitchen_booking(chef, data))
    assert exc.value.status_code == 500


def test_booking_start_utc_converts_local_time():
    start = booking_start_utc(date(2026, 1, 15), "10:00", "America/Toronto")
    assert start == datetime(2026, 1, 15, 15, 0)


def test_booking_start_utc_unknown_timezone_is_utc():
    assert booking_start_utc(date(2026, 1, 15), "10:00", "Not/AZone") == datetime(2026, 1, 15, 10, 0)


def test_chef_cancel_releases_authorization(db, chef, stripe_mock, make_booking):
    booking, storage, _, transaction = make_booking(storage_prices=[3000])

    result = BookingService(db, stripe_service=stripe_mock).cancel_chef_booking(chef, booking.id)

    assert result["status"] == "cancelled"
    assert result["paymentStatus"] == "failed"
    stripe_mock.cancel_payment_intent.assert_called_once_with("pi_test")
    db.refresh(storage[0])
    db.refresh(transaction)
    assert storage[0].status == "cancelled"
    assert transaction.status == "canceled"


# ============================================================================
# MANAGER DECISIONS ON AUTHORISED BOOKINGS
# ============================================================================


def test_confirm_with_rejected_storage_captures_partially(db, manager, stripe_mock, make_booking, sent_emails):
    booking, storage, equipment, transaction = make_booking(storage_prices=[3000], equipment_prices=[2500])
    stripe_mock.capture_payment_intent.return_value = captured_intent()

    update = BookingStatusUpdate(
        status="confirmed", storageActions=[ItemAction(id=storage[0].id, action="cancelled")]
    )
    result = asyncio.run(BookingService(db, stripe_service=stripe_mock).update_booking_status(manager, booking.id, update))

    stripe_mock.capture_payment_intent.assert_called_once_with(
        "pi_test", amount_to_capture=14125, application_fee_amount=440
    )
    assert result["status"] == "confirmed"
    assert result["paymentStatus"] == "paid"
    assert result["capture"] == {"captured": 14125, "released": 3390, "applicationFee": 440, "isPartial": True}
    assert result["storageItems"][0]["rejected"] is True

    db.refresh(storage[0])
    db.refresh(equipment[0])
    db.refresh(transaction)
    assert storage[0].status == "cancelled"
    assert storage[0].payment_status == "failed"
    assert equipment[0].status == "confirmed"
    assert equipment[0].payment_status == "paid"
    assert transaction.status == "succeeded"
    assert transaction.amount == 14125
    assert transaction.charge_id == "ch_1"
    assert transaction.manager_revenue == 14125 - 440
    assert sent_emails.await_count == 1


def test_confirm_everything_captures_in_full(db, manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking(storage_prices=[3000])
    stripe_mock.capture_payment_intent.return_value = captured_intent()

    result = asyncio.run(
        BookingService(db, stripe_service=stripe_mock).update_booking_status(
            manager, booking.id, BookingStatusUpdate(status="confirmed")
        )
    )

    stripe_mock.capture_payment_intent.assert_called_once_with("pi_test")
    assert result["capture"]["isPartial"] is False
    assert result["capture"]["released"] == 0


def test_capture_failure_leaves_booking_pending(db, manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking()
    stripe_mock.capture_payment_intent.side_effect = PaymentProviderError("authorization expired")

    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            BookingService(db, stripe_service=stripe_mock).update_booking_status(
                manager, booking.id, BookingStatusUpdate(status="confirmed")
            )
        )

    assert exc.value.status_code == 500
    db.refresh(booking)
    assert booking.status == "pending"
    assert booking.payment_status == "authorized"


def test_reject_authorized_booking_releases_hold(db, manager, stripe_mock, make_booking):
    booking, storage, equipment, transaction = make_booking(storage_prices=[3000], equipment_prices=[2500])

    result = asyncio.run(
        BookingService(db, stripe_service=stripe_mock).update_booking_status(
            manager, booking.id, BookingStatusUpdate(status="cancelled")
        )
    )

    stripe_mock.cancel_payment_intent.assert_called_once_with("pi_test")
    stripe_mock.capture_payment_intent.assert_not_called()
    assert result["released"] is True
    assert result["paymentStatus"] == "failed"
    db.refresh(storage[0])
    db.refresh(equipment[0])
    db.refresh(transaction)
    assert storage[0].status == "cancelled"
    assert equipment[0].status == "cancelled"
    assert transaction.status == "canceled"


def test_cannot_confirm_unpaid_booking(db, manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking(payment_status="pending")
    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            BookingService(db, stripe_service=stripe_mock).update_booking_status(
                manager, booking.id, BookingStatusUpdate(status="confirmed")
            )
        )
    assert exc.value.status_code == 400


def test_unknown_item_action_is_rejected(db, manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking(storage_prices=[3000])
    update = BookingStatusUpdate(status="confirmed", storageActions=[ItemAction(id=9999, action="cancelled")])
    with pytest.raises(HTTPException) as exc:
        asyncio.run(BookingService(db, stripe_service=stripe_mock).update_booking_status(manager, booking.id, update))
    assert exc.value.status_code == 404
    stripe_mock.capture_payment_intent.assert_not_called()


def test_other_manager_cannot_update(db, other_manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking()
    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            BookingService(db, stripe_service=stripe_mock).update_booking_status(
                other_manager, booking.id, BookingStatusUpdate(status="confirmed")
            )
        )
    assert exc.value.status_code == 403


def test_invalid_status_is_rejected(db, manager, stripe_mock, make_booking):
    booking, _, _, _ = make_booking()
    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            BookingService(db, stripe_service=stripe_mock).update_booking_status(
                manager, booking.id, BookingStatusUpdate(status="completed")
            )
        )
    assert exc.value.status_code == 400


# ============================================================================
# REFUNDS ON CAPTURED BOOKINGS
# ============================================================================


def test_rejecting_item_on_paid_booking_refunds_it(db, manager, stripe_mock, make_booking):
    booking, storage, _, transaction = make_booking(payment_status="paid", storage_prices=[3000], equipment_prices=[2500])
    stripe_mock.reverse_transfer_and_refund.return_value = {"refund_id": "re_1", "transfer_reversal_id": "trr_1"}

    update = BookingStatusUpdate(
        status="confirmed", storageActions=[ItemAction(id=storage[0].id, action="cancelled")]
    )
    result = asyncio.run(BookingService(db, stripe_service=stripe_mock).update_booking_status(manager, booking.id, update))

    args, kwargs = stripe_mock.reverse_transfer_and_refund.call_args
    assert args == ("pi_test", 3286, "requested_by_customer")
    assert kwargs["reverse_transfer_amount"] == 3286
    assert kwargs["refund_application_fee"] is False
    assert result["refund"] == {"amount": 3286, "refundId": "re_1", "type": "items_only", "isFullRefund": False}
    assert result["paymentStatus"] == "partially_refunded"

    db.refresh(storage[0])
    db.refresh(transaction)
    assert storage[0].payment_status == "refunded"
    assert transaction.refund_amount == 3286
    assert transaction.status == "partially_refunded"
    assert transaction.transaction_metadata["refunds"][0]["id"] == "re_1"


def test_cancelling_confirmed_booking_with_refund(db, manager, stripe_mock, make_booking):
    booking, _, _, transaction = make_booking(payment_status="paid", status="confirmed", storage_prices=[3000])
    stripe_mock.reverse_transfer_and_refund.return_value = {"refund_id": "re_2"}

    result = asyncio.run(
        BookingService(db, stripe_service=stripe_mock).update_booking_status(
            manager, booking.id, BookingStatusUpdate(status="cancelled", refundOnCancel=True)
        )
    )

    assert result["refund"]["type"] == "kitchen_and_items"
    assert result["refund"]["amount"] == transaction.manager_revenue
    assert result["refund"]["isFullRefund"] is True
    assert result["paymentStatus"] == "refunded"


def test_refund_failure_keeps_status_change(db, manager, stripe_mock, make_booking):
    booking, _, _, transaction = make_booking(payment_status="paid")
    stripe_mock.reverse_transfer_and_refund.side_effect = PaymentProviderError("insufficient balance")

    result = asyncio.run(
        BookingService(db, stripe_service=stripe_mock).update_booking_status(
            manager, booking.id, BookingStatusUpdate(status="cancelled")
        )
    )

    assert result["status"] == "cancelled"
    assert "refund" not in result
    db.refresh(transaction)
    assert transaction.refund_amount == 0


# ============================================================================
# PREVIEW
# ============================================================================


def test_preview_for_authorized_booking(db, manager, stripe_mock, make_booking):
    booking, storage, _, _ = make_booking(storage_prices=[3000], equipment_prices=[2500])

    preview = BookingService(db, stripe_service=stripe_mock).preview_booking_action(
        manager, booking.id, storage_rejected=[storage[0].id], equipment_rejected=[]
    )

    assert preview["mode"] == "capture"
    assert preview["capture"] == 14125
    assert preview["release"] == 3390
    stripe_mock.capture_payment_intent.assert_not_called()


def test_preview_for_paid_booking(db, manager, stripe_mock, make_booking):
    booking, storage, _, _ = make_booking(payment_status="paid", storage_prices=[3000], equipment_prices=[2500])

    preview = BookingService(db, stripe_service=stripe_mock).preview_booking_action(
        manager, booking.id, storage_rejected=[storage[0].id], equipment_rejected=[]
    )

    assert preview["mode"] == "refund"
    assert preview["refund"] == 3286
    assert preview["refundType"] == "items_only"


# ============================================================================
# SCHEDULED CAPTURE
# ============================================================================


def test_capture_due_payments(db, stripe_mock, make_booking):
    booking_date = date.today() + timedelta(days=7)
    due, _, _, transaction = make_booking(booking_date=booking_date, intent_id="pi_due")
    later, _, _, _ = make_booking(booking_date=booking_date + timedelta(days=5), intent_id="pi_later")
    stripe_mock.retrieve_payment_intent.return_value = MagicMock(status="requires_capture")
    stripe_mock.capture_payment_intent.return_value = captured_intent("pi_due")

    # Inside the 24 hour window of the first booking only
    now = datetime.combine(booking_date - timedelta(days=1), time(11, 0))
    summary = BookingService(db, stripe_service=stripe_mock).capture_due_payments(now=now)

    assert summary == {"processed": 1, "captured": 1, "failed": 0, "errors": []}
    stripe_mock.capture_payment_intent.assert_called_once_with("pi_due")
    db.refresh(due)
    db.refresh(later)
    db.refresh(transaction)
    assert due.payment_status == "paid"
    assert later.payment_status == "authorized"
    assert transaction.status == "succeeded"
    assert transaction.charge_id == "ch_1"


def test_capture_due_payments_skips_intents_not_awaiting_capture(db, stripe_mock, make_booking):
    booking_date = date.today() + timedelta(days=7)
    booking, _, _, _ = make_booking(booking_date=booking_date)
    stripe_mock.retrieve_payment_intent.return_value = MagicMock(status="requires_payment_method")

    summary = BookingService(db, stripe_service=stripe_mock).capture_due_payments(
        now=datetime.combine(booking_date, time(9, 0))
    )

    assert summary["processed"] == 1
    assert summary["captured"] == 0
    stripe_mock.capture_payment_intent.assert_not_called()


def test_capture_due_payments_records_failures(db, stripe_mock, make_booking):
    booking_date = date.today() + timedelta(days=7)
    booking, _, _, _ = make_booking(booking_date=booking_date)
    stripe_mock.retrieve_payment_intent.side_effect = PaymentProviderError("network")

    summary = BookingService(db, stripe_service=stripe_mock).capture_due_payments(
        now=datetime.combine(booking_date, time(9, 0))
    )

    assert summary["failed"] == 1
    assert summary["errors"] == [{"bookingId": booking.id, "error": "network"}]
    db.refresh(booking)
    assert booking.payment_status == "authorized"
