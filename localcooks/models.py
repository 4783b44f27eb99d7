from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(30), default="chef", nullable=False)  # admin, manager, chef, delivery_partner
    is_chef = Column(Boolean, default=False, nullable=False)
    is_manager = Column(Boolean, default=False, nullable=False)
    # Connected account that receives destination charges for a manager's locations
    stripe_connect_account_id = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    locations = relationship("Location", back_populates="manager", foreign_keys="Location.manager_id")


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False)
    notification_email = Column(String(255), nullable=True)
    notification_phone = Column(String(50), nullable=True)
    cancellation_policy_hours = Column(Integer, default=24, nullable=False)
    cancellation_policy_message = Column(
        Text,
        default="Bookings cannot be cancelled within {hours} hours of the scheduled time.",
        nullable=False,
    )
    default_daily_booking_limit = Column(Integer, default=2, nullable=False)
    minimum_booking_window_hours = Column(Integer, default=1, nullable=False)
    timezone = Column(String(64), default="America/St_Johns", nullable=False)
    logo_url = Column(String(500), nullable=True)
    brand_image_url = Column(String(500), nullable=True)
    # Kitchen license review
    kitchen_license_url = Column(String(500), nullable=True)
    kitchen_license_status = Column(String(20), default="pending", nullable=False)
    kitchen_license_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    kitchen_license_approved_at = Column(DateTime, nullable=True)
    kitchen_license_feedback = Column(Text, nullable=True)
    kitchen_license_expiry = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    manager = relationship("User", back_populates="locations", foreign_keys=[manager_id])
    kitchens = relationship("Kitchen", back_populates="location")
    requirements = relationship("LocationRequirements", back_populates="location", uselist=False)


class LocationRequirements(Base):
    __tablename__ = "location_requirements"

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), unique=True, nullable=False)
    require_first_name = Column(Boolean, default=True, nullable=False)
    require_last_name = Column(Boolean, default=True, nullable=False)
    require_email = Column(Boolean, default=True, nullable=False)
    require_phone = Column(Boolean, default=True, nullable=False)
    require_business_name = Column(Boolean, default=True, nullable=False)
    require_business_type = Column(Boolean, default=True, nullable=False)
    require_experience = Column(Boolean, default=True, nullable=False)
    require_business_description = Column(Boolean, default=False, nullable=False)
    require_food_handler_cert = Column(Boolean, default=True, nullable=False)
    require_food_handler_expiry = Column(Boolean, default=True, nullable=False)
    require_usage_frequency = Column(Boolean, default=True, nullable=False)
    require_session_duration = Column(Boolean, default=True, nullable=False)
    require_terms_agree = Column(Boolean, default=True, nullable=False)
    require_accuracy_agree = Column(Boolean, default=True, nullable=False)
    custom_fields = Column(JSON, default=list, nullable=True)
    # Tier 1
    tier1_years_experience_required = Column(Boolean, default=False, nullable=False)
    tier1_years_experience_minimum = Column(Integer, default=0, nullable=False)
    tier1_custom_fields = Column(JSON, default=list, nullable=True)
    # Tier 2
    tier2_food_establishment_cert_required = Column(Boolean, default=False, nullable=False)
    tier2_food_establishment_expiry_required = Column(Boolean, default=False, nullable=False)
    tier2_insurance_document_required = Column(Boolean, default=False, nullable=False)
    tier2_insurance_minimum_amount = Column(Integer, default=0, nullable=False)
    tier2_kitchen_experience_required = Column(Boolean, default=False, nullable=False)
    tier2_allergen_plan_required = Column(Boolean, default=False, nullable=False)
    tier2_supplier_list_required = Column(Boolean, default=False, nullable=False)
    tier2_quality_control_required = Column(Boolean, default=False, nullable=False)
    tier2_traceability_system_required = Column(Boolean, default=False, nullable=False)
    tier2_custom_fields = Column(JSON, default=list, nullable=True)
    # Facility information shown to applicants
    floor_plans_url = Column(String(500), nullable=True)
    ventilation_specs = Column(Text, nullable=True)
    ventilation_specs_url = Column(String(500), nullable=True)
    equipment_list = Column(JSON, default=list, nullable=True)
    materials_description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    location = relationship("Location", back_populates="requirements")


class Kitchen(Base):
    __tablename__ = "kitchens"

    id = Column(Integer, primary_key=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    hourly_rate = Column(Integer, nullable=True)  # cents
    currency = Column(String(3), default="CAD", nullable=False)
    minimum_booking_hours = Column(Integer, default=1, nullable=False)
    tax_rate_percent = Column(Float, nullable=True)  # 13 means 13%
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    location = relationship("Location", back_populates="kitchens")
    storage_listings = relationship("StorageListing", back_populates="kitchen")
    equipment_listings = relationship("EquipmentListing", back_populates="kitchen")


class StorageListing(Base):
    __tablename__ = "storage_listings"

    id = Column(Integer, primary_key=True, index=True)
    kitchen_id = Column(Integer, ForeignKey("kitchens.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    storage_type = Column(String(50), default="dry", nullable=False)  # dry, cold, freezer
    description = Column(Text, nullable=True)
    base_price = Column(Integer, nullable=False, default=0)  # cents per day
    minimum_booking_duration = Column(Integer, default=1, nullable=False)  # days
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    kitchen = relationship("Kitchen", back_populates="storage_listings")


class EquipmentListing(Base):
    __tablename__ = "equipment_listings"

    id = Column(Integer, primary_key=True, index=True)
    kitchen_id = Column(Integer, ForeignKey("kitchens.id"), nullable=False, index=True)
    equipment_type = Column(String(100), nullable=False)
    brand = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    session_rate = Column(Integer, nullable=False, default=0)  # cents per booking session
    damage_deposit = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    kitchen = relationship("Kitchen", back_populates="equipment_listings")


class KitchenBooking(Base):
    __tablename__ = "kitchen_bookings"

    id = Column(Integer, primary_key=True, index=True)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    kitchen_id = Column(Integer, ForeignKey("kitchens.id"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, cancelled
    special_notes = Column(Text, nullable=True)
    # Pricing snapshot, total_price is the pre-tax subtotal
    total_price = Column(Integer, nullable=True)
    hourly_rate = Column(Integer, nullable=True)
    duration_hours = Column(Float, nullable=True)
    service_fee = Column(Integer, default=0, nullable=False)
    currency = Column(String(3), default="CAD", nullable=False)
    # Add-on snapshots: [{"id", "storageBookingId"/"equipmentBookingId", "name", "totalPrice", "rejected"}]
    storage_items = Column(JSON, default=list, nullable=True)
    equipment_items = Column(JSON, default=list, nullable=True)
    payment_status = Column(String(30), default="pending", nullable=False)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    kitchen = relationship("Kitchen")
    chef = relationship("User", foreign_keys=[chef_id])
    storage_bookings = relationship("StorageBooking", back_populates="kitchen_booking")
    equipment_bookings = relationship("EquipmentBooking", back_populates="kitchen_booking")


class StorageBooking(Base):
    __tablename__ = "storage_bookings"

    id = Column(Integer, primary_key=True, index=True)
    storage_listing_id = Column(Integer, ForeignKey("storage_listings.id"), nullable=False)
    kitchen_booking_id = Column(Integer, ForeignKey("kitchen_bookings.id"), nullable=True, index=True)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    total_price = Column(Integer, nullable=False, default=0)
    payment_status = Column(String(30), default="pending", nullable=False)
    payment_intent_id = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    storage_listing = relationship("StorageListing")
    kitchen_booking = relationship("KitchenBooking", back_populates="storage_bookings")


class EquipmentBooking(Base):
    __tablename__ = "equipment_bookings"

    id = Column(Integer, primary_key=True, index=True)
    equipment_listing_id = Column(Integer, ForeignKey("equipment_listings.id"), nullable=False)
    kitchen_booking_id = Column(Integer, ForeignKey("kitchen_bookings.id"), nullable=False, index=True)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), default="pending", nullable=False)
    total_price = Column(Integer, nullable=False, default=0)
    damage_deposit = Column(Integer, nullable=False, default=0)
    payment_status = Column(String(30), default="pending", nullable=False)
    payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    equipment_listing = relationship("EquipmentListing")
    kitchen_booking = relationship("KitchenBooking", back_populates="equipment_bookings")


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, nullable=False, index=True)
    # kitchen, storage, equipment, bundle, damage_claim
    booking_type = Column(String(20), nullable=False)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    amount = Column(Integer, default=0, nullable=False)  # total charged to the chef
    base_amount = Column(Integer, default=0, nullable=False)
    service_fee = Column(Integer, default=0, nullable=False)  # platform application fee
    manager_revenue = Column(Integer, default=0, nullable=False)
    net_amount = Column(Integer, default=0, nullable=False)
    stripe_processing_fee = Column(Integer, default=0, nullable=False)
    refund_amount = Column(Integer, default=0, nullable=False)  # cumulative
    refund_id = Column(String(255), nullable=True)
    refund_reason = Column(Text, nullable=True)
    currency = Column(String(3), default="CAD", nullable=False)
    # pending, processing, succeeded, failed, canceled, refunded, partially_refunded
    status = Column(String(30), default="pending", nullable=False)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    charge_id = Column(String(255), nullable=True)
    transaction_metadata = Column("metadata", JSON, default=dict, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PlatformSetting(Base):
    __tablename__ = "platform_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ChefKitchenApplication(Base):
    __tablename__ = "chef_kitchen_applications"
    __table_args__ = (UniqueConstraint("chef_id", "location_id", name="uq_chef_location_application"),)

    id = Column(Integer, primary_key=True, index=True)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    kitchen_preference = Column(String(50), nullable=True)  # commercial, home, notSure
    business_name = Column(String(255), nullable=True)
    business_type = Column(String(100), nullable=True)
    business_description = Column(Text, nullable=True)
    cooking_experience = Column(String(100), nullable=True)
    usage_frequency = Column(String(100), nullable=True)
    session_duration = Column(String(100), nullable=True)
    food_safety_license = Column(String(20), nullable=True)  # yes, no, notSure
    food_safety_license_url = Column(String(500), nullable=True)
    food_safety_license_expiry = Column(Date, nullable=True)
    food_establishment_cert = Column(String(20), nullable=True)
    food_establishment_cert_url = Column(String(500), nullable=True)
    food_establishment_cert_expiry = Column(Date, nullable=True)
    custom_fields_data = Column(JSON, default=dict, nullable=True)
    status = Column(String(20), default="inReview", nullable=False)  # inReview, approved, rejected, cancelled
    feedback = Column(Text, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    current_tier = Column(Integer, default=1, nullable=False)
    tier1_completed_at = Column(DateTime, nullable=True)
    tier2_completed_at = Column(DateTime, nullable=True)
    tier3_submitted_at = Column(DateTime, nullable=True)
    tier4_completed_at = Column(DateTime, nullable=True)
    tier_data = Column(JSON, default=dict, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    location = relationship("Location")
    chef = relationship("User", foreign_keys=[chef_id])


class DamageClaim(Base):
    __tablename__ = "damage_claims"

    id = Column(Integer, primary_key=True, index=True)
    booking_type = Column(String(20), nullable=False)  # kitchen, storage
    kitchen_booking_id = Column(Integer, ForeignKey("kitchen_bookings.id"), nullable=True, index=True)
    storage_booking_id = Column(Integer, ForeignKey("storage_bookings.id"), nullable=True, index=True)
    chef_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    manager_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    claim_title = Column(String(255), nullable=False)
    claim_description = Column(Text, nullable=False)
    damage_date = Column(Date, nullable=False)
    damaged_items = Column(JSON, default=list, nullable=True)
    claimed_amount_cents = Column(Integer, nullable=False)
    approved_amount_cents = Column(Integer, nullable=True)
    final_amount_cents = Column(Integer, nullable=True)
    status = Column(String(30), default="draft", nullable=False, index=True)
    submitted_at = Column(DateTime, nullable=True)
    # Chef response
    chef_response = Column(Text, nullable=True)
    chef_responded_at = Column(DateTime, nullable=True)
    chef_response_deadline = Column(DateTime, nullable=False)
    # Admin review
    admin_reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    admin_reviewed_at = Column(DateTime, nullable=True)
    admin_decision_reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    # Payment
    stripe_customer_id = Column(String(255), nullable=True)
    stripe_payment_method_id = Column(String(255), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_charge_id = Column(String(255), nullable=True)
    charge_attempted_at = Column(DateTime, nullable=True)
    charge_succeeded_at = Column(DateTime, nullable=True)
    charge_failed_at = Column(DateTime, nullable=True)
    charge_failure_reason = Column(Text, nullable=True)
    stripe_refund_id = Column(String(255), nullable=True)
    refunded_amount_cents = Column(Integer, default=0, nullable=False)
    refunded_at = Column(DateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    # paid, paid_manually, waived, refunded, partially_refunded
    resolution_type = Column(String(30), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    evidence = relationship(
        "DamageEvidence", back_populates="claim", cascade="all, delete-orphan", order_by="DamageEvidence.id"
    )
    history = relationship(
        "DamageClaimHistory",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="DamageClaimHistory.id",
    )
    chef = relationship("User", foreign_keys=[chef_id])
    manager = relationship("User", foreign_keys=[manager_id])
    location = relationship("Location")


class DamageEvidence(Base):
    __tablename__ = "damage_evidence"

    id = Column(Integer, primary_key=True, index=True)
    damage_claim_id = Column(Integer, ForeignKey("damage_claims.id"), nullable=False, index=True)
    evidence_type = Column(String(30), nullable=False)
    file_url = Column(String(500), nullable=False)
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount_cents = Column(Integer, nullable=True)  # receipts and repair quotes
    vendor_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    claim = relationship("DamageClaim", back_populates="evidence")


class DamageClaimHistory(Base):
    __tablename__ = "damage_claim_history"

    id = Column(Integer, primary_key=True, index=True)
    damage_claim_id = Column(Integer, ForeignKey("damage_claims.id"), nullable=False, index=True)
    previous_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=False)
    action = Column(String(50), nullable=False)
    action_by = Column(String(20), nullable=False)  # manager, chef, admin, system
    action_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)
    history_metadata = Column("metadata", JSON, default=dict, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    claim = relationship("DamageClaim", back_populates="history")
