"""
Booking service - Chef bookings and the manager approval flow

Chef checkout authorises the full amount with a manual-capture
PaymentIntent. When the manager acts on the booking only the approved
lines are captured and the rest of the hold is released. Bookings that
were already captured get a single refund covering every rejected line.
"""

import logging
import math
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import notify, send_booking_request_email, send_booking_status_email
from ...models import (
    EquipmentBooking,
    Kitchen,
    KitchenBooking,
    Location,
    PaymentTransaction,
    StorageBooking,
    User,
)
from ...pricing import (
    build_action_preview,
    calculate_capture_plan,
    calculate_duration_hours,
    calculate_kitchen_booking_price,
    calculate_original_authorized,
    calculate_refund_plan,
    calculate_stripe_processing_fee,
    calculate_tax,
)
from ..payments.repository import PaymentRepository
from ..payments.stripe_service import PaymentProviderError, StripeService
from .repository import BookingRepository
from .schemas import BOOKING_STATUSES, BookingStatusUpdate, KitchenBookingCreate

logger = logging.getLogger(__name__)

CAPTURED_PAYMENT_STATUSES = ("paid", "processing")
REFUNDABLE_PAYMENT_STATUSES = ("paid", "processing", "partially_refunded")
# approved applications below this tier cannot book yet
MIN_BOOKING_TIER = 2

CAPTURE_FAILED_MESSAGE = (
    "Failed to capture payment. The authorization may have expired. Please ask the chef to rebook."
)


def booking_start_utc(booking_date, start_time: str, timezone: Optional[str]) -> datetime:
    """Naive UTC datetime at which a booking starts in its location's timezone"""
    hour, minute = (int(p) for p in start_time.split(":"))
    local_start = datetime.combine(booking_date, time(hour, minute))
    try:
        tz = ZoneInfo(timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown timezone '{timezone}', treating booking time as UTC")
        return local_start
    return local_start.replace(tzinfo=tz).astimezone(ZoneInfo("UTC")).replace(tzinfo=None)


def booking_to_response(b: KitchenBooking) -> dict:
    return {
        "id": b.id,
        "chefId": b.chef_id,
        "kitchenId": b.kitchen_id,
        "bookingDate": b.booking_date,
        "startTime": b.start_time,
        "endTime": b.end_time,
        "status": b.status,
        "totalPrice": b.total_price,
        "hourlyRate": b.hourly_rate,
        "durationHours": b.duration_hours,
        "serviceFee": b.service_fee or 0,
        "currency": b.currency,
        "paymentStatus": b.payment_status,
        "paymentIntentId": b.payment_intent_id,
        "specialNotes": b.special_notes,
        "storageItems": list(b.storage_items or []),
        "equipmentItems": list(b.equipment_items or []),
        "createdAt": b.created_at,
    }


def _flag_rejected_items(items: Optional[list], id_key: str, rejected_ids: set) -> list:
    """Copy of a JSON item snapshot with rejected entries flagged"""
    flagged = []
    for item in items or []:
        item = dict(item)
        if item.get(id_key) in rejected_ids:
            item["rejected"] = True
        flagged.append(item)
    return flagged


class BookingService:
    """Service layer for kitchen bookings"""

    def __init__(self, db: Session, stripe_service: Optional[StripeService] = None):
        self.db = db
        self.repo = BookingRepository()
        self.payments = PaymentRepository()
        self.stripe = stripe_service or StripeService()

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_booking(self, booking_id: int) -> KitchenBooking:
        booking = self.repo.get_by_id(self.db, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def get_manager_booking(self, booking_id: int, manager: User) -> tuple[KitchenBooking, Kitchen, Location]:
        booking = self.get_booking(booking_id)
        kitchen = booking.kitchen
        location = kitchen.location if kitchen else None
        if not location or location.manager_id != manager.id:
            logger.warning(f"⚠️ Manager {manager.id} denied access to booking {booking_id}")
            raise HTTPException(status_code=403, detail="Access denied to this booking")
        return booking, kitchen, location

    def get_chef_bookings(self, chef: User) -> list[dict]:
        return [booking_to_response(b) for b in self.repo.get_chef_bookings(self.db, chef.id)]

    def get_manager_bookings(self, manager: User, status: Optional[str] = None) -> list[dict]:
        return [booking_to_response(b) for b in self.repo.get_manager_bookings(self.db, manager.id, status)]

    # ========================================================================
    # CHEF BOOKING CREATION
    # ========================================================================

    async def create_kitchen_booking(
        self, chef: User, data: KitchenBookingCreate, now: Optional[datetime] = None
    ) -> dict:
        """Create a booking and hold the full amount on the chef's card"""
        now = now or datetime.utcnow()
        logger.info(f"📥 Booking request from chef {chef.id} for kitchen {data.kitchenId} on {data.bookingDate}")

        kitchen = self.repo.get_kitchen(self.db, data.kitchenId)
        if not kitchen:
            raise HTTPException(status_code=404, detail="Kitchen not found")
        if not kitchen.is_active:
            raise HTTPException(status_code=400, detail="Kitchen is not available for booking")
        location = kitchen.location

        application = self.repo.get_application(self.db, chef.id, location.id)
        if not application or application.status != "approved":
            raise HTTPException(
                status_code=403,
                detail="You need an approved application for this location before booking",
            )
        if (application.current_tier or 1) < MIN_BOOKING_TIER:
            raise HTTPException(
                status_code=403,
                detail="Complete the next application step for this location before booking",
            )

        if calculate_duration_hours(data.startTime, data.endTime) <= 0:
            raise HTTPException(status_code=400, detail="End time must be after start time")

        start_at = booking_start_utc(data.bookingDate, data.startTime, location.timezone)
        window_hours = location.minimum_booking_window_hours or 0
        if start_at < now + timedelta(hours=window_hours):
            raise HTTPException(
                status_code=400,
                detail=f"Bookings must be made at least {window_hours} hour(s) in advance",
            )

        daily_limit = location.default_daily_booking_limit or 0
        if self.repo.count_active_bookings_on_date(self.db, kitchen.id, data.bookingDate) >= daily_limit:
            raise HTTPException(
                status_code=409,
                detail=f"Daily booking limit of {daily_limit} reached for this kitchen",
            )

        price = calculate_kitchen_booking_price(
            kitchen.hourly_rate,
            kitchen.minimum_booking_hours,
            kitchen.tax_rate_percent,
            data.startTime,
            data.endTime,
        )
        if price["subtotal"] <= 0:
            raise HTTPException(status_code=400, detail="This kitchen has no hourly rate set")

        storage_lines = []
        for item in data.storageItems:
            listing = self.repo.get_storage_listing(self.db, item.storageListingId)
            if not listing or listing.kitchen_id != kitchen.id or not listing.is_active:
                raise HTTPException(status_code=404, detail=f"Storage listing {item.storageListingId} not found")
            seconds = (item.endDate - item.startDate).total_seconds()
            if seconds <= 0:
                raise HTTPException(status_code=400, detail="Storage end date must be after start date")
            days = max(math.ceil(seconds / 86400), listing.minimum_booking_duration or 1)
            storage_lines.append((listing, item, listing.base_price * days))

        equipment_lines = []
        for item in data.equipmentItems:
            listing = self.repo.get_equipment_listing(self.db, item.equipmentListingId)
            if not listing or listing.kitchen_id != kitchen.id or not listing.is_active:
                raise HTTPException(
                    status_code=404, detail=f"Equipment listing {item.equipmentListingId} not found"
                )
            equipment_lines.append((listing, listing.session_rate))

        subtotal = (
            price["subtotal"]
            + sum(line[2] for line in storage_lines)
            + sum(line[1] for line in equipment_lines)
        )
        tax = calculate_tax(subtotal, kitchen.tax_rate_percent)
        total = subtotal + tax
        application_fee = calculate_stripe_processing_fee(total)

        booking = self.repo.add(
            self.db,
            KitchenBooking(
                chef_id=chef.id,
                kitchen_id=kitchen.id,
                booking_date=data.bookingDate,
                start_time=data.startTime,
                end_time=data.endTime,
                status="pending",
                special_notes=data.specialNotes,
                total_price=subtotal,
                hourly_rate=price["hourly_rate"],
                duration_hours=price["duration_hours"],
                service_fee=application_fee,
                currency=kitchen.currency,
                payment_status="pending",
                stripe_customer_id=chef.stripe_customer_id,
                stripe_payment_method_id=data.paymentMethodId,
            ),
        )

        storage_items = []
        storage_bookings = []
        for listing, item, line_total in storage_lines:
            sb = self.repo.add(
                self.db,
                StorageBooking(
                    storage_listing_id=listing.id,
                    kitchen_booking_id=booking.id,
                    chef_id=chef.id,
                    start_date=item.startDate,
                    end_date=item.endDate,
                    status="pending",
                    total_price=line_total,
                    payment_status="pending",
                    stripe_customer_id=chef.stripe_customer_id,
                    stripe_payment_method_id=data.paymentMethodId,
                ),
            )
            storage_bookings.append(sb)
            storage_items.append(
                {"id": listing.id, "storageBookingId": sb.id, "name": listing.name, "totalPrice": line_total}
            )

        equipment_items = []
        equipment_bookings = []
        for listing, line_total in equipment_lines:
            eb = self.repo.add(
                self.db,
                EquipmentBooking(
                    equipment_listing_id=listing.id,
                    kitchen_booking_id=booking.id,
                    chef_id=chef.id,
                    status="pending",
                    total_price=line_total,
                    damage_deposit=listing.damage_deposit or 0,
                    payment_status="pending",
                ),
            )
            equipment_bookings.append(eb)
            equipment_items.append(
                {
                    "id": listing.id,
                    "equipmentBookingId": eb.id,
                    "name": listing.equipment_type,
                    "totalPrice": line_total,
                }
            )
        booking.storage_items = storage_items
        booking.equipment_items = equipment_items

        manager = self.repo.get_user(self.db, location.manager_id)
        try:
            intent = self.stripe.create_authorization(
                amount=total,
                customer_id=chef.stripe_customer_id,
                payment_method_id=data.paymentMethodId,
                metadata={
                    "booking_id": booking.id,
                    "booking_type": "bundle" if storage_bookings or equipment_bookings else "kitchen",
                    "kitchen_id": kitchen.id,
                    "chef_id": chef.id,
                    "manager_id": location.manager_id,
                    "subtotal": subtotal,
                    "tax": tax,
                },
                destination_account_id=manager.stripe_connect_account_id if manager else None,
                application_fee=application_fee,
                idempotency_key=f"kitchen_booking_{booking.id}_authorization",
            )
        except PaymentProviderError as e:
            self.db.rollback()
            logger.error(f"❌ Payment authorization failed for chef {chef.id}: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to authorize payment: {e}") from e

        booking.payment_intent_id = intent.id
        for sub_booking in storage_bookings + equipment_bookings:
            sub_booking.payment_intent_id = intent.id

        self.payments.create_transaction(
            self.db,
            commit=False,
            booking_id=booking.id,
            booking_type="bundle" if storage_bookings or equipment_bookings else "kitchen",
            chef_id=chef.id,
            manager_id=location.manager_id,
            amount=total,
            base_amount=total - application_fee,
            service_fee=application_fee,
            manager_revenue=total - application_fee,
            net_amount=total - application_fee,
            stripe_processing_fee=application_fee,
            currency=kitchen.currency,
            status="pending",
            payment_intent_id=intent.id,
            transaction_metadata={
                "subtotal": subtotal,
                "tax": tax,
                "taxRatePercent": kitchen.tax_rate_percent or 0,
                "kitchenPrice": price["subtotal"],
            },
        )
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} created, {total} cents authorised on {intent.id}")

        await notify(
            "booking_request",
            send_booking_request_email,
            to=location.notification_email or (manager.email if manager else None),
            manager_name=(manager.full_name or manager.username or "there") if manager else "there",
            chef_name=chef.full_name or chef.username or chef.email,
            kitchen_name=kitchen.name,
            booking_date=str(booking.booking_date),
            time_range=f"{booking.start_time} - {booking.end_time}",
            total_cents=total,
        )
        return booking_to_response(booking)

    def cancel_chef_booking(self, chef: User, booking_id: int) -> dict:
        """A chef withdraws a booking the manager has not acted on yet"""
        booking = self.get_booking(booking_id)
        if booking.chef_id != chef.id:
            raise HTTPException(status_code=403, detail="Access denied to this booking")
        if booking.status != "pending":
            raise HTTPException(status_code=400, detail="Only pending bookings can be cancelled")

        storage_bookings = self.repo.get_storage_bookings(self.db, booking.id)
        equipment_bookings = self.repo.get_equipment_bookings(self.db, booking.id)
        if booking.payment_intent_id and booking.payment_status in ("pending", "authorized"):
            self._release_authorization(booking, storage_bookings, equipment_bookings)

        booking.status = "cancelled"
        for sub_booking in storage_bookings + equipment_bookings:
            sub_booking.status = "cancelled"
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} cancelled by chef {chef.id}")
        return booking_to_response(booking)

    # ========================================================================
    # MANAGER STATUS UPDATE
    # ========================================================================

    @staticmethod
    def _resolve_item_actions(actions, sub_bookings: list, kitchen_status: str, label: str) -> dict:
        """Map every sub-booking id to confirmed, cancelled or pending"""
        explicit = {a.id: a.action for a in actions or []}
        known_ids = {sb.id for sb in sub_bookings}
        for item_id in explicit:
            if item_id not in known_ids:
                raise HTTPException(status_code=404, detail=f"{label} {item_id} not found for this booking")

        resolved = {}
        for sb in sub_bookings:
            if kitchen_status == "cancelled":
                resolved[sb.id] = "cancelled"
            else:
                resolved[sb.id] = explicit.get(sb.id, kitchen_status)
        return resolved

    async def update_booking_status(self, manager: User, booking_id: int, data: BookingStatusUpdate) -> dict:
        """
        Apply a manager decision and settle the payment to match it.

        Authorised bookings are partially captured or released. Bookings
        that were already captured are refunded for whatever got rejected.
        """
        if data.status not in BOOKING_STATUSES:
            raise HTTPException(
                status_code=400, detail=f"Invalid status. Must be one of: {', '.join(BOOKING_STATUSES)}"
            )

        booking, kitchen, location = self.get_manager_booking(booking_id, manager)
        previous_status = booking.status
        new_status = data.status
        logger.info(f"📥 Manager {manager.id} setting booking {booking.id}: {previous_status} -> {new_status}")

        if new_status == "confirmed" and booking.payment_status == "pending":
            raise HTTPException(
                status_code=400,
                detail="Cannot confirm this booking: the chef never completed payment",
            )

        storage_bookings = self.repo.get_storage_bookings(self.db, booking.id)
        equipment_bookings = self.repo.get_equipment_bookings(self.db, booking.id)
        storage_actions = self._resolve_item_actions(
            data.storageActions, storage_bookings, new_status, "Storage booking"
        )
        equipment_actions = self._resolve_item_actions(
            data.equipmentActions, equipment_bookings, new_status, "Equipment booking"
        )
        rejected_storage = [sb for sb in storage_bookings if storage_actions[sb.id] == "cancelled"]
        rejected_equipment = [eb for eb in equipment_bookings if equipment_actions[eb.id] == "cancelled"]

        from_pending = previous_status == "pending"
        original_payment_status = booking.payment_status
        was_authorized = original_payment_status == "authorized"
        capture_result = None
        released = False

        if from_pending and was_authorized and new_status == "confirmed":
            capture_result = self._capture_approved_lines(
                booking, kitchen, storage_bookings, equipment_bookings, rejected_storage, rejected_equipment
            )
        elif from_pending and was_authorized and new_status == "cancelled":
            self._release_authorization(booking, storage_bookings, equipment_bookings)
            released = True

        booking.status = new_status
        for sb in storage_bookings:
            if storage_actions[sb.id] != "pending":
                sb.status = storage_actions[sb.id]
        for eb in equipment_bookings:
            if equipment_actions[eb.id] != "pending":
                eb.status = equipment_actions[eb.id]
        self.db.commit()
        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} status saved as {new_status}")

        refund_result = None
        kitchen_rejected = new_status == "cancelled"
        if (
            from_pending
            and original_payment_status in CAPTURED_PAYMENT_STATUSES
            and (kitchen_rejected or rejected_storage or rejected_equipment)
        ):
            refund_result = self._process_unified_refund(
                booking,
                kitchen,
                manager,
                kitchen_rejected,
                rejected_storage,
                rejected_equipment,
                data.customRefundAmount,
            )
        elif (
            previous_status == "confirmed"
            and new_status == "cancelled"
            and data.refundOnCancel
            and original_payment_status in REFUNDABLE_PAYMENT_STATUSES
        ):
            refund_result = self._process_unified_refund(
                booking,
                kitchen,
                manager,
                True,
                storage_bookings,
                equipment_bookings,
                data.customRefundAmount,
            )

        rejected_names = [
            item.get("name", "Storage")
            for item in booking.storage_items or []
            if item.get("storageBookingId") in {sb.id for sb in rejected_storage}
        ] + [
            item.get("name", "Equipment")
            for item in booking.equipment_items or []
            if item.get("equipmentBookingId") in {eb.id for eb in rejected_equipment}
        ]
        chef = booking.chef
        if chef and previous_status != new_status:
            await notify(
                "booking_status",
                send_booking_status_email,
                to=chef.email,
                chef_name=chef.full_name or chef.username or "Chef",
                kitchen_name=kitchen.name,
                booking_date=str(booking.booking_date),
                time_range=f"{booking.start_time} - {booking.end_time}",
                status=new_status,
                captured_cents=capture_result["capture_amount"] if capture_result else None,
                released_cents=capture_result["released_amount"] if capture_result else None,
                refund_cents=refund_result["refund_amount"] if refund_result else None,
                rejected_items=rejected_names if new_status == "confirmed" else None,
            )

        response = booking_to_response(booking)
        response["released"] = released
        if capture_result:
            response["capture"] = {
                "captured": capture_result["capture_amount"],
                "released": capture_result["released_amount"],
                "applicationFee": capture_result["application_fee"],
                "isPartial": capture_result["is_partial"],
            }
        if refund_result:
            response["refund"] = {
                "amount": refund_result["refund_amount"],
                "refundId": refund_result.get("refund_id"),
                "type": refund_result["refund_type"],
                "isFullRefund": refund_result["is_full_refund"],
            }
        return response

    def _capture_approved_lines(
        self,
        booking: KitchenBooking,
        kitchen: Kitchen,
        storage_bookings: list,
        equipment_bookings: list,
        rejected_storage: list,
        rejected_equipment: list,
    ) -> dict:
        """Capture the approved part of the authorisation; nothing is saved if Stripe refuses"""
        rejected_storage_ids = {sb.id for sb in rejected_storage}
        rejected_equipment_ids = {eb.id for eb in rejected_equipment}
        plan = calculate_capture_plan(
            booking.hourly_rate,
            booking.duration_hours,
            booking.total_price,
            kitchen.tax_rate_percent,
            [sb.total_price or 0 for sb in storage_bookings if sb.id not in rejected_storage_ids],
            [eb.total_price or 0 for eb in equipment_bookings if eb.id not in rejected_equipment_ids],
        )
        logger.info(
            f"💳 Capturing booking {booking.id}: {plan['capture_amount']} of {plan['original_authorized']} cents "
            f"(fee {plan['application_fee']}, partial={plan['is_partial']})"
        )

        try:
            if plan["is_partial"]:
                intent = self.stripe.capture_payment_intent(
                    booking.payment_intent_id,
                    amount_to_capture=plan["capture_amount"],
                    application_fee_amount=plan["application_fee"],
                )
            else:
                intent = self.stripe.capture_payment_intent(booking.payment_intent_id)
        except PaymentProviderError as e:
            self.db.rollback()
            logger.error(f"❌ Capture failed for booking {booking.id}: {e}")
            raise HTTPException(status_code=500, detail=CAPTURE_FAILED_MESSAGE) from e

        booking.payment_status = "paid"
        booking.total_price = plan["approved_subtotal"]
        booking.service_fee = plan["application_fee"]
        booking.storage_items = _flag_rejected_items(booking.storage_items, "storageBookingId", rejected_storage_ids)
        booking.equipment_items = _flag_rejected_items(
            booking.equipment_items, "equipmentBookingId", rejected_equipment_ids
        )
        for sb in storage_bookings:
            sb.payment_status = "failed" if sb.id in rejected_storage_ids else "paid"
        for eb in equipment_bookings:
            eb.payment_status = "failed" if eb.id in rejected_equipment_ids else "paid"

        transaction = self.payments.get_transaction_by_intent_id(self.db, booking.payment_intent_id)
        if transaction:
            capture = plan["capture_amount"]
            fee = plan["application_fee"]
            metadata = dict(transaction.transaction_metadata or {})
            metadata.update(
                partialCapture=plan["is_partial"],
                originalAuthorized=plan["original_authorized"],
                released=plan["released_amount"],
                rejectedStorageIds=sorted(rejected_storage_ids),
                rejectedEquipmentIds=sorted(rejected_equipment_ids),
            )
            self.payments.update_transaction(
                self.db,
                transaction,
                commit=False,
                status="succeeded",
                amount=capture,
                base_amount=capture - fee,
                service_fee=fee,
                stripe_processing_fee=fee,
                manager_revenue=capture - fee,
                net_amount=capture - fee,
                charge_id=_charge_id(intent),
                paid_at=datetime.utcnow(),
                transaction_metadata=metadata,
            )
        else:
            logger.warning(f"⚠️ No payment transaction found for {booking.payment_intent_id}")
        return plan

    def _release_authorization(self, booking: KitchenBooking, storage_bookings: list, equipment_bookings: list):
        """Cancel the hold on the chef's card; a Stripe error does not block the rejection"""
        try:
            self.stripe.cancel_payment_intent(booking.payment_intent_id)
        except PaymentProviderError as e:
            logger.error(f"❌ Could not cancel authorization {booking.payment_intent_id}: {e}")

        booking.payment_status = "failed"
        for sub_booking in storage_bookings + equipment_bookings:
            if sub_booking.payment_status in ("pending", "authorized"):
                sub_booking.payment_status = "failed"
        transaction = self.payments.get_transaction_by_intent_id(self.db, booking.payment_intent_id)
        if transaction:
            self.payments.update_transaction(self.db, transaction, commit=False, status="canceled")
        logger.info(f"💳 Released authorization for booking {booking.id}")

    def _process_unified_refund(
        self,
        booking: KitchenBooking,
        kitchen: Kitchen,
        manager: User,
        kitchen_rejected: bool,
        rejected_storage: list,
        rejected_equipment: list,
        custom_refund_amount: Optional[int] = None,
    ) -> Optional[dict]:
        """Single refund for every rejected line of a captured booking"""
        transaction = self.payments.get_transaction_by_intent_id(self.db, booking.payment_intent_id or "")
        if not transaction:
            logger.warning(f"⚠️ No payment transaction for booking {booking.id}; refund skipped")
            return None

        plan = calculate_refund_plan(
            kitchen_rejected,
            booking.total_price or 0,
            [sb.total_price or 0 for sb in rejected_storage],
            [eb.total_price or 0 for eb in rejected_equipment],
            kitchen.tax_rate_percent,
            transaction.amount or 0,
            transaction.stripe_processing_fee or 0,
            transaction.manager_revenue or 0,
            transaction.refund_amount or 0,
            custom_refund_amount,
        )
        if plan["refund_amount"] <= 0:
            logger.info(f"Nothing refundable for booking {booking.id}")
            return plan

        rejected_storage_ids = sorted(sb.id for sb in rejected_storage)
        rejected_equipment_ids = sorted(eb.id for eb in rejected_equipment)
        try:
            result = self.stripe.reverse_transfer_and_refund(
                booking.payment_intent_id,
                plan["refund_amount"],
                "requested_by_customer",
                reverse_transfer_amount=plan["refund_amount"],
                refund_application_fee=False,
                metadata={
                    "booking_id": booking.id,
                    "booking_type": plan["refund_type"],
                    "manager_id": manager.id,
                    "cancellation_reason": (
                        "Booking rejected by manager"
                        if kitchen_rejected
                        else "Item(s) rejected by manager (partial approval)"
                    ),
                    "rejected_storage_ids": rejected_storage_ids,
                    "rejected_equipment_ids": rejected_equipment_ids,
                    "gross_refund_cents": plan["gross_refund"],
                    "proportional_tax_cents": plan["proportional_tax"],
                    "proportional_stripe_fee_cents": plan["proportional_stripe_fee"],
                    "customer_receives": plan["refund_amount"],
                    "manager_debited": plan["refund_amount"],
                },
            )
        except PaymentProviderError as e:
            logger.error(f"❌ Refund failed for booking {booking.id}, status change kept: {e}")
            return None

        new_total = (transaction.refund_amount or 0) + plan["refund_amount"]
        new_status = "refunded" if new_total >= (transaction.manager_revenue or 0) else "partially_refunded"
        metadata = dict(transaction.transaction_metadata or {})
        metadata["refunds"] = list(metadata.get("refunds") or []) + [
            {
                "id": result["refund_id"],
                "amount": plan["refund_amount"],
                "type": plan["refund_type"],
                "createdAt": datetime.utcnow().isoformat(),
                "createdBy": manager.id,
            }
        ]
        self.payments.update_transaction(
            self.db,
            transaction,
            commit=False,
            status=new_status,
            refund_amount=new_total,
            refund_id=result["refund_id"],
            refund_reason="Rejected by manager",
            refunded_at=datetime.utcnow(),
            transaction_metadata=metadata,
        )

        booking.payment_status = new_status
        storage_ids = set(rejected_storage_ids)
        equipment_ids = set(rejected_equipment_ids)
        for sb in rejected_storage:
            sb.payment_status = "refunded"
        for eb in rejected_equipment:
            eb.payment_status = "refunded"
        booking.storage_items = _flag_rejected_items(booking.storage_items, "storageBookingId", storage_ids)
        booking.equipment_items = _flag_rejected_items(booking.equipment_items, "equipmentBookingId", equipment_ids)
        self.db.commit()
        logger.info(f"✅ Refunded {plan['refund_amount']} cents for booking {booking.id} ({new_status})")

        plan["refund_id"] = result["refund_id"]
        return plan

    # ========================================================================
    # PREVIEW
    # ========================================================================

    def preview_booking_action(
        self,
        manager: User,
        booking_id: int,
        storage_rejected: list[int],
        equipment_rejected: list[int],
        kitchen_rejected: bool = False,
    ) -> dict:
        booking, kitchen, _ = self.get_manager_booking(booking_id, manager)
        storage_bookings = self.repo.get_storage_bookings(self.db, booking.id)
        equipment_bookings = self.repo.get_equipment_bookings(self.db, booking.id)
        rejected_storage_ids = set(storage_rejected)
        rejected_equipment_ids = set(equipment_rejected)
        if kitchen_rejected:
            rejected_storage_ids = {sb.id for sb in storage_bookings}
            rejected_equipment_ids = {eb.id for eb in equipment_bookings}

        transaction = None
        if booking.payment_intent_id:
            transaction = self.payments.get_transaction_by_intent_id(self.db, booking.payment_intent_id)
        transaction_amount = (
            transaction.amount
            if transaction
            else calculate_original_authorized(booking.total_price or 0, kitchen.tax_rate_percent)
        )

        if booking.payment_status == "authorized":
            plan = calculate_capture_plan(
                booking.hourly_rate,
                booking.duration_hours,
                booking.total_price,
                kitchen.tax_rate_percent,
                [sb.total_price or 0 for sb in storage_bookings if sb.id not in rejected_storage_ids],
                [eb.total_price or 0 for eb in equipment_bookings if eb.id not in rejected_equipment_ids],
            )
            if kitchen_rejected:
                plan.update(capture_amount=0, is_partial=True)
            return build_action_preview("authorized", transaction_amount, capture_plan=plan)

        if booking.payment_status in REFUNDABLE_PAYMENT_STATUSES and transaction:
            plan = calculate_refund_plan(
                kitchen_rejected,
                booking.total_price or 0,
                [sb.total_price or 0 for sb in storage_bookings if sb.id in rejected_storage_ids],
                [eb.total_price or 0 for eb in equipment_bookings if eb.id in rejected_equipment_ids],
                kitchen.tax_rate_percent,
                transaction.amount or 0,
                transaction.stripe_processing_fee or 0,
                transaction.manager_revenue or 0,
                transaction.refund_amount or 0,
            )
            return build_action_preview(booking.payment_status, transaction_amount, refund_plan=plan)

        return build_action_preview(booking.payment_status, transaction_amount)

    # ========================================================================
    # SCHEDULED CAPTURE
    # ========================================================================

    def capture_due_payments(self, now: Optional[datetime] = None) -> dict:
        """
        Capture authorisations once a booking is inside its cancellation window.
        Only intents Stripe reports as requires_capture are touched.
        """
        now = now or datetime.utcnow()
        results = {"processed": 0, "captured": 0, "failed": 0, "errors": []}

        for booking in self.repo.get_capture_candidates(self.db):
            location = booking.kitchen.location
            start_at = booking_start_utc(booking.booking_date, booking.start_time, location.timezone)
            capture_at = start_at - timedelta(hours=location.cancellation_policy_hours or 0)
            if capture_at > now:
                continue

            results["processed"] += 1
            try:
                intent = self.stripe.retrieve_payment_intent(booking.payment_intent_id)
                if intent.status != "requires_capture":
                    logger.debug(f"Booking {booking.id}: intent status {intent.status}, not capturing")
                    continue
                captured = self.stripe.capture_payment_intent(booking.payment_intent_id)
            except PaymentProviderError as e:
                results["failed"] += 1
                results["errors"].append({"bookingId": booking.id, "error": str(e)})
                logger.error(f"❌ Scheduled capture failed for booking {booking.id}: {e}")
                continue

            booking.payment_status = "paid"
            for sub_booking in self.repo.get_storage_bookings(self.db, booking.id) + self.repo.get_equipment_bookings(
                self.db, booking.id
            ):
                if sub_booking.payment_status in ("pending", "authorized"):
                    sub_booking.payment_status = "paid"
            transaction: Optional[PaymentTransaction] = self.payments.get_transaction_by_intent_id(
                self.db, booking.payment_intent_id
            )
            if transaction:
                self.payments.update_transaction(
                    self.db,
                    transaction,
                    commit=False,
                    status="succeeded",
                    charge_id=_charge_id(captured),
                    paid_at=datetime.utcnow(),
                )
            self.db.commit()
            results["captured"] += 1
            logger.info(f"💳 Scheduled capture succeeded for booking {booking.id}")

        logger.info(
            f"✅ Capture run: {results['processed']} due, {results['captured']} captured, {results['failed']} failed"
        )
        return results


def _charge_id(intent) -> Optional[str]:
    charge = getattr(intent, "latest_charge", None)
    if charge is None or isinstance(charge, str):
        return charge
    return getattr(charge, "id", None)
