import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

from datetime import date, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock, MagicMock, patch  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from localcooks import models  # noqa: E402
from localcooks.database import Base  # noqa: E402
from localcooks.pricing import calculate_stripe_processing_fee, calculate_tax  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def sent_emails():
    """Every outgoing email lands here instead of Resend"""
    with patch("localcooks.email_service.send_email", new=AsyncMock(return_value={"id": "email_test"})) as mock:
        yield mock


@pytest.fixture
def stripe_mock():
    return MagicMock()


def _add(db, row):
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def manager(db):
    return _add(
        db,
        models.User(
            firebase_uid="manager-uid",
            email="manager@example.com",
            full_name="Morgan Manager",
            role="manager",
            is_manager=True,
            stripe_connect_account_id="acct_manager",
        ),
    )


@pytest.fixture
def other_manager(db):
    return _add(
        db,
        models.User(
            firebase_uid="other-manager-uid",
            email="other@example.com",
            full_name="Other Manager",
            role="manager",
            is_manager=True,
        ),
    )


@pytest.fixture
def chef(db):
    return _add(
        db,
        models.User(
            firebase_uid="chef-uid",
            email="chef@example.com",
            full_name="Casey Chef",
            role="chef",
            is_chef=True,
            stripe_customer_id="cus_chef",
        ),
    )


@pytest.fixture
def admin(db):
    return _add(
        db,
        models.User(
            firebase_uid="admin-uid",
            email="admin@example.com",
            full_name="Ada Admin",
            role="admin",
        ),
    )


@pytest.fixture
def location(db, manager):
    return _add(
        db,
        models.Location(
            manager_id=manager.id,
            name="Harbour Kitchen",
            address="1 Water St, St. John's",
            notification_email="bookings@harbour.example.com",
            cancellation_policy_hours=24,
            default_daily_booking_limit=2,
            minimum_booking_window_hours=1,
            timezone="UTC",
        ),
    )


@pytest.fixture
def kitchen(db, location):
    return _add(
        db,
        models.Kitchen(
            location_id=location.id,
            name="Main Line",
            hourly_rate=5000,
            minimum_booking_hours=1,
            tax_rate_percent=13,
        ),
    )


@pytest.fixture
def storage_listing(db, kitchen):
    return _add(
        db,
        models.StorageListing(kitchen_id=kitchen.id, name="Walk-in Cooler", storage_type="cold", base_price=1000),
    )


@pytest.fixture
def equipment_listing(db, kitchen):
    return _add(
        db,
        models.EquipmentListing(kitchen_id=kitchen.id, equipment_type="Stand Mixer", session_rate=2500),
    )


@pytest.fixture
def approved_application(db, chef, location):
    return _add(
        db,
        models.ChefKitchenApplication(
            chef_id=chef.id,
            location_id=location.id,
            full_name="Casey Chef",
            email="chef@example.com",
            status="approved",
            current_tier=3,
        ),
    )


@pytest.fixture
def make_booking(db, chef, manager, kitchen, storage_listing, equipment_listing):
    """
    Kitchen booking of 2 hours at $50/h with optional add-ons and a matching
    payment transaction.
    """

    def _make(
        payment_status="authorized",
        status="pending",
        storage_prices=(),
        equipment_prices=(),
        booking_date=None,
        start_time="10:00",
        end_time="12:00",
        intent_id="pi_test",
    ):
        booking_date = booking_date or (date.today() + timedelta(days=7))
        subtotal = 10000 + sum(storage_prices) + sum(equipment_prices)
        total = subtotal + calculate_tax(subtotal, kitchen.tax_rate_percent)
        fee = calculate_stripe_processing_fee(total)

        booking = _add(
            db,
            models.KitchenBooking(
                chef_id=chef.id,
                kitchen_id=kitchen.id,
                booking_date=booking_date,
                start_time=start_time,
                end_time=end_time,
                status=status,
                total_price=subtotal,
                hourly_rate=5000,
                duration_hours=2,
                service_fee=fee,
                payment_status=payment_status,
                payment_intent_id=intent_id,
                stripe_customer_id=chef.stripe_customer_id,
                stripe_payment_method_id="pm_card",
            ),
        )

        storage_bookings = []
        storage_items = []
        for price in storage_prices:
            sb = _add(
                db,
                models.StorageBooking(
                    storage_listing_id=storage_listing.id,
                    kitchen_booking_id=booking.id,
                    chef_id=chef.id,
                    start_date=datetime.combine(booking_date, datetime.min.time()),
                    end_date=datetime.combine(booking_date + timedelta(days=3), datetime.min.time()),
                    status=status,
                    total_price=price,
                    payment_status=payment_status,
                    payment_intent_id=intent_id,
                    stripe_customer_id=chef.stripe_customer_id,
                    stripe_payment_method_id="pm_card",
                ),
            )
            storage_bookings.append(sb)
            storage_items.append(
                {"id": storage_listing.id, "storageBookingId": sb.id, "name": "Walk-in Cooler", "totalPrice": price}
            )

        equipment_bookings = []
        equipment_items = []
        for price in equipment_prices:
            eb = _add(
                db,
                models.EquipmentBooking(
                    equipment_listing_id=equipment_listing.id,
                    kitchen_booking_id=booking.id,
                    chef_id=chef.id,
                    status=status,
                    total_price=price,
                    payment_status=payment_status,
                    payment_intent_id=intent_id,
                ),
            )
            equipment_bookings.append(eb)
            equipment_items.append(
                {"id": equipment_listing.id, "equipmentBookingId": eb.id, "name": "Stand Mixer", "totalPrice": price}
            )

        booking.storage_items = storage_items
        booking.equipment_items = equipment_items
        transaction = models.PaymentTransaction(
            booking_id=booking.id,
            booking_type="bundle" if storage_prices or equipment_prices else "kitchen",
            chef_id=chef.id,
            manager_id=manager.id,
            amount=total,
            base_amount=total - fee,
            service_fee=fee,
            manager_revenue=total - fee,
            net_amount=total - fee,
            stripe_processing_fee=fee,
            status="succeeded" if payment_status == "paid" else "pending",
            payment_intent_id=intent_id,
        )
        db.add(transaction)
        db.commit()
        db.refresh(booking)
        db.refresh(transaction)
        return booking, storage_bookings, equipment_bookings, transaction

    return _make
