"""
Pricing, capture and refund arithmetic for kitchen bookings.

All amounts are integer cents. Tax rates are percentages (13 means 13%).
Rounding is half-up so that the figures match what the manager dashboard
shows and what Stripe records.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

# Stripe card processing: 2.9% + 30 cents
STRIPE_PERCENT_FEE = Decimal("0.029")
STRIPE_FIXED_FEE_CENTS = 30


def round_cents(value) -> int:
    """Round a cent amount half-up to an integer"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_duration_hours(start_time: str, end_time: str) -> float:
    """Hours between two HH:MM strings on the same day, never negative"""
    start_h, start_m = (int(p) for p in start_time.split(":"))
    end_h, end_m = (int(p) for p in end_time.split(":"))
    minutes = (end_h * 60 + end_m) - (start_h * 60 + start_m)
    return max(0.0, minutes / 60)


def calculate_tax(subtotal_cents: int, tax_rate_percent: Optional[float]) -> int:
    if not tax_rate_percent or tax_rate_percent <= 0:
        return 0
    return round_cents(Decimal(subtotal_cents) * Decimal(str(tax_rate_percent)) / 100)


def calculate_stripe_processing_fee(amount_cents: int) -> int:
    """Estimated Stripe fee for a card charge, used as the platform application fee"""
    if amount_cents <= 0:
        return 0
    return round_cents(Decimal(amount_cents) * STRIPE_PERCENT_FEE + STRIPE_FIXED_FEE_CENTS)


def calculate_kitchen_booking_price(
    hourly_rate: Optional[int],
    minimum_booking_hours: Optional[int],
    tax_rate_percent: Optional[float],
    start_time: str,
    end_time: str,
) -> dict:
    """
    Price a kitchen session.
    The minimum booking hours of the kitchen apply to short sessions.
    """
    duration = calculate_duration_hours(start_time, end_time)
    if not hourly_rate or hourly_rate <= 0:
        return {
            "subtotal": 0,
            "duration_hours": duration,
            "hourly_rate": 0,
            "tax": 0,
            "total": 0,
        }

    effective_duration = max(duration, float(minimum_booking_hours or 0))
    subtotal = round_cents(Decimal(hourly_rate) * Decimal(str(effective_duration)))
    tax = calculate_tax(subtotal, tax_rate_percent)
    return {
        "subtotal": subtotal,
        "duration_hours": effective_duration,
        "hourly_rate": hourly_rate,
        "tax": tax,
        "total": subtotal + tax,
    }


def calculate_original_authorized(total_price: int, tax_rate_percent: Optional[float]) -> int:
    """Amount held on the chef's card at checkout: subtotal plus tax"""
    return total_price + calculate_tax(total_price, tax_rate_percent)


def calculate_capture_plan(
    hourly_rate: Optional[int],
    duration_hours: Optional[float],
    total_price: Optional[int],
    tax_rate_percent: Optional[float],
    approved_storage_prices: list[int],
    approved_equipment_prices: list[int],
) -> dict:
    """
    Work out what to capture when a manager approves an authorised booking.

    The kitchen session is always part of the capture. Only the approved
    add-ons are added on top; rejected ones are released with the rest of
    the authorisation.
    """
    kitchen_price = round_cents(Decimal(hourly_rate or 0) * Decimal(str(duration_hours or 0)))
    approved_subtotal = kitchen_price + sum(approved_storage_prices) + sum(approved_equipment_prices)
    approved_tax = calculate_tax(approved_subtotal, tax_rate_percent)
    capture_amount = approved_subtotal + approved_tax
    application_fee = calculate_stripe_processing_fee(capture_amount)
    original_authorized = calculate_original_authorized(total_price or 0, tax_rate_percent)

    return {
        "kitchen_price": kitchen_price,
        "approved_subtotal": approved_subtotal,
        "approved_tax": approved_tax,
        "capture_amount": capture_amount,
        "application_fee": application_fee,
        "original_authorized": original_authorized,
        "is_partial": capture_amount < original_authorized,
        "released_amount": max(0, original_authorized - capture_amount),
    }


def calculate_refund_breakdown(
    total_charged: int,
    manager_revenue: int,
    already_refunded: int,
    stripe_processing_fee: int,
) -> dict:
    """
    Refund limits for a captured transaction.
    Whatever the chef gets back is taken from the manager's balance, so the
    manager's remaining balance is the ceiling.
    """
    remaining = max(0, manager_revenue - already_refunded)
    return {
        "max_refundable": remaining,
        "remaining_manager_balance": remaining,
        "total_charged": total_charged,
        "original_stripe_fee": stripe_processing_fee,
    }


def calculate_refund_plan(
    kitchen_rejected: bool,
    kitchen_total_price: int,
    rejected_storage_prices: list[int],
    rejected_equipment_prices: list[int],
    tax_rate_percent: Optional[float],
    transaction_amount: int,
    stripe_processing_fee: int,
    manager_revenue: int,
    already_refunded: int,
    custom_refund_amount: Optional[int] = None,
) -> dict:
    """
    Refund for the rejected parts of a captured booking.

    Tax is refunded in proportion to the rejected subtotal and the Stripe
    fee is shared in proportion to the gross refund. The result is capped
    at the manager's remaining balance.
    """
    storage_total = sum(rejected_storage_prices)
    equipment_total = sum(rejected_equipment_prices)
    rejected_subtotal = (kitchen_total_price if kitchen_rejected else 0) + storage_total + equipment_total
    proportional_tax = calculate_tax(rejected_subtotal, tax_rate_percent)
    gross_refund = rejected_subtotal + proportional_tax

    proportional_fee = 0
    if transaction_amount > 0:
        proportional_fee = round_cents(
            Decimal(stripe_processing_fee) * Decimal(gross_refund) / Decimal(transaction_amount)
        )
    net_refund = max(0, gross_refund - proportional_fee)

    remaining = max(0, manager_revenue - already_refunded)
    requested = net_refund if custom_refund_amount is None else max(0, custom_refund_amount)
    refund_amount = min(requested, remaining)

    has_items = bool(rejected_storage_prices or rejected_equipment_prices)
    if kitchen_rejected and has_items:
        refund_type = "kitchen_and_items"
    elif kitchen_rejected:
        refund_type = "kitchen_only"
    else:
        refund_type = "items_only"

    return {
        "rejected_subtotal": rejected_subtotal,
        "proportional_tax": proportional_tax,
        "gross_refund": gross_refund,
        "proportional_stripe_fee": proportional_fee,
        "net_refund": net_refund,
        "remaining_balance": remaining,
        "refund_amount": refund_amount,
        "is_full_refund": refund_amount >= remaining,
        "refund_type": refund_type,
    }


def build_capture_preview(capture_amount: int, transaction_amount: int) -> dict:
    """Figures shown to the manager before approving an authorised booking"""
    fee = calculate_stripe_processing_fee(capture_amount)
    return {
        "capture": capture_amount,
        "release": max(0, transaction_amount - capture_amount),
        "estimatedStripeFee": fee,
        "managerNet": max(0, capture_amount - fee),
    }


def build_action_preview(
    payment_status: str,
    transaction_amount: int,
    capture_plan: Optional[dict] = None,
    refund_plan: Optional[dict] = None,
) -> dict:
    """
    What a manager decision would do to the money.
    Authorised bookings preview a capture/release, captured ones a refund.
    """
    if payment_status == "authorized" and capture_plan is not None:
        preview = build_capture_preview(capture_plan["capture_amount"], transaction_amount)
        preview.update(
            mode="capture",
            isPartial=capture_plan["is_partial"],
            originalAuthorized=capture_plan["original_authorized"],
        )
        return preview
    if refund_plan is not None:
        return {
            "mode": "refund",
            "refund": refund_plan["refund_amount"],
            "rejectedSubtotal": refund_plan["rejected_subtotal"],
            "proportionalTax": refund_plan["proportional_tax"],
            "grossRefund": refund_plan["gross_refund"],
            "proportionalStripeFee": refund_plan["proportional_stripe_fee"],
            "netRefund": refund_plan["net_refund"],
            "remainingBalance": refund_plan["remaining_balance"],
            "isFullRefund": refund_plan["is_full_refund"],
            "refundType": refund_plan["refund_type"],
        }
    return {"mode": "none"}
