import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from localcooks.domain.damage_claims.limits import DamageClaimLimitsService
from localcooks.domain.damage_claims.schemas import (
    AdminDecision,
    DamageClaimCreate,
    DamageClaimUpdate,
    EvidenceCreate,
)
from localcooks.domain.damage_claims.service import DamageClaimService
from localcooks.domain.payments.stripe_service import PaymentProviderError
from localcooks.models import DamageClaim, PaymentTransaction, PlatformSetting


@pytest.fixture
def paid_booking(make_booking):
    booking, _, _, _ = make_booking(payment_status="paid", status="confirmed")
    return booking


@pytest.fixture
def service(db, stripe_mock):
    return DamageClaimService(db, stripe_service=stripe_mock)


def claim_data(booking, **overrides):
    data = {
        "bookingType": "kitchen",
        "kitchenBookingId": booking.id,
        "claimTitle": "Cracked prep table",
        "claimDescription": "The stainless prep table top was cracked after the session.",
        "damageDate": booking.booking_date,
        "claimedAmountCents": 5000,
    }
    data.update(overrides)
    return DamageClaimCreate(**data)


def evidence(evidence_type="photo_after"):
    return EvidenceCreate(evidenceType=evidence_type, fileUrl="https://files.example.com/a.jpg")


def succeeded_intent():
    return MagicMock(id="pi_claim", status="succeeded", latest_charge="ch_claim")


def submitted_claim(service, manager, booking, **overrides):
    return asyncio.run(service.create_damage_claim(manager, claim_data(booking, submitImmediately=True, **overrides)))


# ============================================================================
# CREATION
# ============================================================================


def test_create_submitted_claim_notifies_chef(service, manager, chef, paid_booking, sent_emails):
    result = submitted_claim(service, manager, paid_booking)

    assert result["status"] == "submitted"
    assert result["chefId"] == chef.id
    assert result["claimedAmountCents"] == 5000
    deadline = result["chefResponseDeadline"] - datetime.utcnow()
    assert timedelta(hours=71) < deadline <= timedelta(hours=72)
    sent_emails.assert_awaited_once()
    assert sent_emails.await_args.kwargs["to"] == "chef@example.com"


def test_create_draft_does_not_notify(service, manager, paid_booking, sent_emails):
    result = asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    assert result["status"] == "draft"
    sent_emails.assert_not_awaited()


def test_claim_amount_below_minimum(service, manager, paid_booking):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking, claimedAmountCents=500)))
    assert exc.value.status_code == 400
    assert "$10.00" in exc.value.detail


def test_claim_amount_above_configured_maximum(db, service, manager, admin, paid_booking):
    DamageClaimLimitsService(db).update_limits(admin, {"maxClaimAmountCents": 4000})
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    assert exc.value.status_code == 400
    assert "$40.00" in exc.value.detail


def test_claims_per_booking_limit(service, manager, paid_booking):
    for _ in range(3):
        asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    assert exc.value.status_code == 409


def test_cancelled_booking_is_not_eligible(service, manager, make_booking):
    booking, _, _, _ = make_booking(status="cancelled", payment_status="failed")
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(manager, claim_data(booking)))
    assert exc.value.status_code == 400


def test_other_manager_cannot_claim(service, other_manager, paid_booking):
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(other_manager, claim_data(paid_booking)))
    assert exc.value.status_code == 403


def test_damage_date_after_submission_window(service, manager, paid_booking):
    late = paid_booking.booking_date + timedelta(days=15)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking, damageDate=late)))
    assert exc.value.status_code == 400


def test_storage_claim_requires_storage_booking_id():
    with pytest.raises(ValueError):
        DamageClaimCreate(
            bookingType="storage",
            claimTitle="Broken shelf",
            claimDescription="Shelf collapsed in the walk-in cooler.",
            damageDate=date.today(),
            claimedAmountCents=2000,
        )


# ============================================================================
# DRAFTS AND EVIDENCE
# ============================================================================


def test_submit_requires_two_pieces_of_evidence(service, manager, paid_booking, sent_emails):
    draft = asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    service.add_evidence(manager, draft["id"], evidence("photo_before"))

    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.submit_claim(manager, draft["id"]))
    assert exc.value.status_code == 400

    service.add_evidence(manager, draft["id"], evidence("receipt"))
    result = asyncio.run(service.submit_claim(manager, draft["id"]))
    assert result["status"] == "submitted"
    assert len(result["evidence"]) == 2
    sent_emails.assert_awaited_once()


def test_update_and_delete_draft(service, manager, paid_booking):
    draft = asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))

    updated = service.update_draft_claim(manager, draft["id"], DamageClaimUpdate(claimedAmountCents=7500))
    assert updated["claimedAmountCents"] == 7500

    assert service.delete_draft_claim(manager, draft["id"]) == {"success": True}
    with pytest.raises(HTTPException) as exc:
        service.get_claim_by_id(manager, draft["id"])
    assert exc.value.status_code == 404


def test_submitted_claim_cannot_be_edited(service, manager, paid_booking):
    claim = submitted_claim(service, manager, paid_booking)
    with pytest.raises(HTTPException) as exc:
        service.update_draft_claim(manager, claim["id"], DamageClaimUpdate(claimTitle="New title here"))
    assert exc.value.status_code == 400


def test_chef_cannot_add_evidence_before_disputing(service, manager, chef, paid_booking):
    claim = submitted_claim(service, manager, paid_booking)
    with pytest.raises(HTTPException) as exc:
        service.add_evidence(chef, claim["id"], evidence())
    assert exc.value.status_code == 403


def test_unknown_evidence_type_is_rejected():
    with pytest.raises(ValueError):
        EvidenceCreate(evidenceType="selfie", fileUrl="https://files.example.com/a.jpg")


def test_chef_cannot_see_drafts(service, manager, chef, paid_booking):
    draft = asyncio.run(service.create_damage_claim(manager, claim_data(paid_booking)))
    with pytest.raises(HTTPException) as exc:
        service.get_claim_history(chef, draft["id"])
    assert exc.value.status_code == 403
    assert service.get_chef_claims(chef) == []


# ============================================================================
# CHEF RESPONSE
# ============================================================================


def test_chef_accept_approves_and_charges(db, service, stripe_mock, manager, chef, paid_booking):
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    claim = submitted_claim(service, manager, paid_booking)

    result = asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Yes, that was our mistake."))

    assert result["status"] == "charge_succeeded"
    assert result["charge"] == {"success": True, "paymentIntentId": "pi_claim", "chargeId": "ch_claim"}
    kwargs = stripe_mock.create_off_session_charge.call_args.kwargs
    assert kwargs["amount"] == 5000
    assert kwargs["customer_id"] == "cus_chef"
    assert kwargs["payment_method_id"] == "pm_card"
    assert kwargs["destination_account_id"] == "acct_manager"
    assert kwargs["application_fee"] == 175

    transaction = db.query(PaymentTransaction).filter(PaymentTransaction.booking_type == "damage_claim").one()
    assert transaction.amount == 5000
    assert transaction.manager_revenue == 4825

    actions = [h["action"] for h in service.get_claim_history(manager, claim["id"])]
    assert actions[:3] == ["submitted", "chef_response", "auto_approved"]


def test_storage_claim_charges_storage_booking_card(
    db, service, stripe_mock, manager, chef, location, make_booking
):
    _, storage, _, _ = make_booking(payment_status="paid", status="confirmed", storage_prices=[3000])
    storage_booking = storage[0]
    storage_booking.stripe_customer_id = "cus_storage"
    storage_booking.stripe_payment_method_id = "pm_storage"
    db.commit()
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()

    claim = asyncio.run(
        service.create_damage_claim(
            manager,
            DamageClaimCreate(
                bookingType="storage",
                storageBookingId=storage_booking.id,
                claimTitle="Broken cooler shelf",
                claimDescription="A wire shelf in the walk-in cooler was bent and snapped.",
                damageDate=storage_booking.end_date.date() + timedelta(days=2),
                claimedAmountCents=2500,
                submitImmediately=True,
            ),
        )
    )
    assert claim["bookingType"] == "storage"
    assert claim["locationId"] == location.id
    assert claim["chefId"] == chef.id

    result = asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Yes, the shelf broke on us."))

    assert result["status"] == "charge_succeeded"
    kwargs = stripe_mock.create_off_session_charge.call_args.kwargs
    assert kwargs["customer_id"] == "cus_storage"
    assert kwargs["payment_method_id"] == "pm_storage"
    assert kwargs["metadata"]["booking_type"] == "storage"


def test_storage_claim_after_submission_window(db, service, manager, make_booking):
    _, storage, _, _ = make_booking(payment_status="paid", status="confirmed", storage_prices=[3000])
    late = storage[0].end_date.date() + timedelta(days=15)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(
            service.create_damage_claim(
                manager,
                DamageClaimCreate(
                    bookingType="storage",
                    storageBookingId=storage[0].id,
                    claimTitle="Broken cooler shelf",
                    claimDescription="A wire shelf in the walk-in cooler was bent and snapped.",
                    damageDate=late,
                    claimedAmountCents=2500,
                ),
            )
        )
    assert exc.value.status_code == 400


def test_kitchen_claim_falls_back_to_storage_booking_card(db, service, stripe_mock, manager, chef, make_booking):
    booking, storage, _, _ = make_booking(payment_status="paid", status="confirmed", storage_prices=[3000])
    booking.stripe_payment_method_id = None
    storage[0].stripe_customer_id = "cus_storage"
    storage[0].stripe_payment_method_id = "pm_storage"
    db.commit()
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    claim = submitted_claim(service, manager, booking)

    result = asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Yes, that was our mistake."))

    assert result["status"] == "charge_succeeded"
    kwargs = stripe_mock.create_off_session_charge.call_args.kwargs
    assert kwargs["customer_id"] == "cus_storage"
    assert kwargs["payment_method_id"] == "pm_storage"


def test_chef_dispute_escalates_to_admin(service, stripe_mock, manager, chef, paid_booking, sent_emails):
    claim = submitted_claim(service, manager, paid_booking)
    sent_emails.reset_mock()

    result = asyncio.run(service.chef_respond(chef, claim["id"], "dispute", "The table was already cracked."))

    assert result["status"] == "under_review"
    stripe_mock.create_off_session_charge.assert_not_called()
    recipients = [call.kwargs["to"] for call in sent_emails.await_args_list]
    assert "manager@example.com" in recipients
    assert "admin@localcooks.ca" in recipients
    assert [c["id"] for c in service.get_disputed_claims()] == [claim["id"]]


def test_chef_response_too_short(service, manager, chef, paid_booking):
    claim = submitted_claim(service, manager, paid_booking)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.chef_respond(chef, claim["id"], "accept", "ok"))
    assert exc.value.status_code == 400


def test_only_the_claimed_chef_can_respond(service, manager, other_manager, paid_booking):
    claim = submitted_claim(service, manager, paid_booking)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.chef_respond(other_manager, claim["id"], "accept", "Not my booking at all."))
    assert exc.value.status_code == 403


# ============================================================================
# ADMIN DECISIONS
# ============================================================================


def disputed_claim(service, manager, chef, booking):
    claim = submitted_claim(service, manager, booking)
    asyncio.run(service.chef_respond(chef, claim["id"], "dispute", "I disagree with this claim."))
    return claim


def test_admin_partial_approval_charges_reduced_amount(service, stripe_mock, manager, chef, admin, paid_booking):
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    claim = disputed_claim(service, manager, chef, paid_booking)

    decision = AdminDecision(decision="partially_approve", approvedAmountCents=3000, decisionReason="Shared fault")
    result = asyncio.run(service.admin_decision(admin, claim["id"], decision))

    assert result["finalAmountCents"] == 3000
    assert result["status"] == "charge_succeeded"
    assert stripe_mock.create_off_session_charge.call_args.kwargs["amount"] == 3000


def test_admin_partial_approval_cannot_exceed_claim(service, manager, chef, admin, paid_booking):
    claim = disputed_claim(service, manager, chef, paid_booking)
    decision = AdminDecision(decision="partially_approve", approvedAmountCents=9000, decisionReason="Too much")
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.admin_decision(admin, claim["id"], decision))
    assert exc.value.status_code == 400


def test_admin_rejection_closes_claim(service, stripe_mock, manager, chef, admin, paid_booking):
    claim = disputed_claim(service, manager, chef, paid_booking)

    result = asyncio.run(
        service.admin_decision(admin, claim["id"], AdminDecision(decision="reject", decisionReason="No evidence"))
    )

    assert result["status"] == "rejected"
    assert result["finalAmountCents"] == 0
    stripe_mock.create_off_session_charge.assert_not_called()


# ============================================================================
# CHARGING
# ============================================================================


def test_charge_failure_then_retry(service, stripe_mock, manager, chef, paid_booking):
    stripe_mock.create_off_session_charge.side_effect = PaymentProviderError("Your card was declined.")
    claim = submitted_claim(service, manager, paid_booking)

    result = asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Fine, please charge me."))
    assert result["status"] == "charge_failed"
    assert result["chargeFailureReason"] == "Your card was declined."
    assert service.get_chef_unpaid_claims(chef.id)["totalOwedCents"] == 5000

    stripe_mock.create_off_session_charge.side_effect = None
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    retry = asyncio.run(service.retry_charge(manager, claim["id"]))
    assert retry["success"] is True
    assert service.has_chef_unpaid_claims(chef.id) is False


def test_charge_needing_authentication_fails(db, service, stripe_mock, manager, chef, paid_booking):
    stripe_mock.create_off_session_charge.return_value = MagicMock(id="pi_3ds", status="requires_action")
    claim = submitted_claim(service, manager, paid_booking)

    asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Fine, please charge me."))

    row = db.query(DamageClaim).filter(DamageClaim.id == claim["id"]).one()
    assert row.status == "charge_failed"
    assert row.stripe_payment_intent_id == "pi_3ds"


def test_charge_without_saved_card_fails(db, service, stripe_mock, manager, chef, paid_booking):
    paid_booking.stripe_payment_method_id = None
    db.commit()
    claim = submitted_claim(service, manager, paid_booking)

    asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Fine, please charge me."))

    stripe_mock.create_off_session_charge.assert_not_called()
    assert service.get_claim_by_id(manager, claim["id"])["chargeFailureReason"] == "No saved payment method available"


def test_manual_resolution_of_failed_charge(service, stripe_mock, manager, chef, paid_booking):
    stripe_mock.create_off_session_charge.side_effect = PaymentProviderError("declined")
    claim = submitted_claim(service, manager, paid_booking)
    asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Fine, please charge me."))

    result = service.resolve_claim(manager, claim["id"], "waived", "Goodwill")

    assert result["status"] == "resolved"
    assert result["resolutionType"] == "waived"
    with pytest.raises(HTTPException):
        service.resolve_claim(manager, claim["id"], "waived", None)


# ============================================================================
# REFUNDS
# ============================================================================


def charged_claim(service, stripe_mock, manager, chef, booking):
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    claim = submitted_claim(service, manager, booking)
    asyncio.run(service.chef_respond(chef, claim["id"], "accept", "Yes, that was our mistake."))
    return claim


def test_partial_refund_of_charged_claim(db, service, stripe_mock, manager, chef, admin, paid_booking):
    claim = charged_claim(service, stripe_mock, manager, chef, paid_booking)
    stripe_mock.create_refund.return_value = MagicMock(id="re_claim")

    result = asyncio.run(service.refund_damage_claim(admin, claim["id"], 2000, "Repair was cheaper"))

    assert result["refundId"] == "re_claim"
    assert result["claim"]["status"] == "resolved"
    assert result["claim"]["resolutionType"] == "partially_refunded"
    assert result["claim"]["refundedAmountCents"] == 2000
    args, kwargs = stripe_mock.create_refund.call_args
    assert args == ("pi_claim", 2000, "requested_by_customer")
    assert kwargs["reverse_transfer"] is True

    transaction = db.query(PaymentTransaction).filter(PaymentTransaction.payment_intent_id == "pi_claim").one()
    assert transaction.status == "partially_refunded"
    assert transaction.refund_amount == 2000


def test_refund_cannot_exceed_charge(service, stripe_mock, manager, chef, admin, paid_booking):
    claim = charged_claim(service, stripe_mock, manager, chef, paid_booking)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.refund_damage_claim(admin, claim["id"], 6000, "Too much"))
    assert exc.value.status_code == 400
    stripe_mock.create_refund.assert_not_called()


def test_refund_requires_successful_charge(service, manager, admin, paid_booking):
    claim = submitted_claim(service, manager, paid_booking)
    with pytest.raises(HTTPException) as exc:
        asyncio.run(service.refund_damage_claim(admin, claim["id"], None, "Nothing charged"))
    assert exc.value.status_code == 400


# ============================================================================
# DEADLINE PROCESSING
# ============================================================================


def test_expired_claims_are_auto_approved_and_charged(db, service, stripe_mock, manager, paid_booking):
    stripe_mock.create_off_session_charge.return_value = succeeded_intent()
    claim = submitted_claim(service, manager, paid_booking)
    other = submitted_claim(service, manager, paid_booking)

    results = asyncio.run(service.process_expired_claims(now=datetime.utcnow() + timedelta(hours=73)))

    assert {r["claim_id"] for r in results} == {claim["id"], other["id"]}
    assert all(r["charged"] for r in results)

    actions = [h["action"] for h in service.get_claim_history(manager, claim["id"])]
    assert "deadline_expired" in actions


def test_claims_inside_deadline_are_left_alone(service, stripe_mock, manager, paid_booking):
    submitted_claim(service, manager, paid_booking)
    assert asyncio.run(service.process_expired_claims()) == []
    stripe_mock.create_off_session_charge.assert_not_called()


# ============================================================================
# LIMITS
# ============================================================================


def test_limits_defaults(db):
    limits = DamageClaimLimitsService(db).get_limits()
    assert limits == {
        "maxClaimAmountCents": 500000,
        "minClaimAmountCents": 1000,
        "maxClaimsPerBooking": 3,
        "chefResponseDeadlineHours": 72,
        "claimSubmissionDeadlineDays": 14,
    }


def test_limits_update_persists_settings(db, admin):
    result = DamageClaimLimitsService(db).update_limits(admin, {"maxClaimsPerBooking": 5, "reviewWindowHours": 4})

    assert result["maxClaimsPerBooking"] == 5
    assert result["reviewWindowHours"] == 4
    setting = db.query(PlatformSetting).filter(PlatformSetting.key == "damage_claim_max_per_booking").one()
    assert setting.value == "5"
    assert setting.updated_by == admin.id


def test_limits_min_cannot_exceed_max(db, admin):
    with pytest.raises(HTTPException) as exc:
        DamageClaimLimitsService(db).update_limits(admin, {"minClaimAmountCents": 600000})
    assert exc.value.status_code == 400


def test_invalid_stored_limit_falls_back_to_default(db):
    db.add(PlatformSetting(key="damage_claim_max_per_booking", value="lots"))
    db.commit()
    assert DamageClaimLimitsService(db).get_limits()["maxClaimsPerBooking"] == 3
