from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, Float, UniqueConstraint, JSON, Date, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    # Sequential public number, e.g. XSC-0001
    number = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    username = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    dob = Column(Date, nullable=True)
    whatsapp = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    # active|inactive|suspended
    status = Column(String, nullable=False, server_default="active")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    country = Column(String, nullable=True)
    profile_url = Column(String, nullable=True)
    # Notification preferences
    send_push_noti = Column(Boolean, nullable=False, default=False)
    send_sms_noti = Column(Boolean, nullable=False, default=False)
    # Password reset
    reset_token = Column(String, nullable=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    reset_token_verified = Column(Boolean, nullable=False, default=False)
    reset_cooldown_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Model(Base):
    """A companion offering services to customers."""
    __tablename__ = "models"

    id = Column(Integer, primary_key=True, index=True)
    # Sequential public number, e.g. XSM-0001
    number = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=True)
    username = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    dob = Column(Date, nullable=True)
    whatsapp = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    bio = Column(Text, nullable=True)
    address = Column(String, nullable=True)
    country = Column(String, nullable=True)
    # pending|active|inactive|suspended; new accounts wait for approval
    status = Column(String, nullable=False, server_default="pending")
    # online|offline|busy
    available_status = Column(
        String, nullable=False, server_default="offline")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    profile_url = Column(String, nullable=True)
    rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    send_push_noti = Column(Boolean, nullable=False, default=False)
    send_sms_noti = Column(Boolean, nullable=False, default=False)
    reset_token = Column(String, nullable=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    reset_token_verified = Column(Boolean, nullable=False, default=False)
    reset_cooldown_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    # per_day|per_hour|per_session|per_minute
    billing_type = Column(String, nullable=False, server_default="per_day")
    base_rate = Column(Integer, nullable=False, default=0)
    hourly_rate = Column(Integer, nullable=True)
    one_time_price = Column(Integer, nullable=True)
    one_night_price = Column(Integer, nullable=True)
    minute_rate = Column(Integer, nullable=True)
    # Platform commission in percent
    commission = Column(Float, nullable=False, default=0)
    status = Column(String, nullable=False, server_default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ModelService(Base):
    """A model's application to offer a service, with optional custom rates."""
    __tablename__ = "model_services"

    id = Column(Integer, primary_key=True, index=True)
    model_id = Column(Integer, ForeignKey(
        "models.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey(
        "services.id", ondelete="CASCADE"), nullable=False, index=True)
    custom_rate = Column(Integer, nullable=True)
    custom_hourly_rate = Column(Integer, nullable=True)
    custom_one_time_price = Column(Integer, nullable=True)
    custom_one_night_price = Column(Integer, nullable=True)
    custom_minute_rate = Column(Integer, nullable=True)
    service_location = Column(String, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, server_default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("model_id", "service_id",
                         name="uq_model_service"),
    )


class Wallet(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="CASCADE"), nullable=True, unique=True)
    model_id = Column(Integer, ForeignKey(
        "models.id", ondelete="CASCADE"), nullable=True, unique=True)
    total_balance = Column(Integer, nullable=False, default=0)
    total_recharge = Column(Integer, nullable=False, default=0)
    total_deposit = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, server_default="active")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "(customer_id IS NULL) <> (model_id IS NULL)",
            name="ck_wallet_single_owner"),
    )


class Transaction(Base):
    """Wallet ledger entry. Holds are stored as negative amounts."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    # recharge|withdrawal|booking_hold|booking_earning|booking_refund|
    # call_hold|call_earning|call_refund|call_refund_unused|subscription
    identifier = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    # pending|approved|rejected|held|released|refunded
    status = Column(String, nullable=False, server_default="pending")
    commission = Column(Integer, nullable=True)
    fee = Column(Integer, nullable=True)
    payment_slip = Column(String, nullable=True)
    reason = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="SET NULL"), nullable=True, index=True)
    model_id = Column(Integer, ForeignKey(
        "models.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Booking(Base):
    """Service booking. Calls are bookings on a per_minute service."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="CASCADE"), nullable=False, index=True)
    model_id = Column(Integer, ForeignKey(
        "models.id", ondelete="CASCADE"), nullable=False, index=True)
    model_service_id = Column(Integer, ForeignKey(
        "model_services.id", ondelete="SET NULL"), nullable=True)
    price = Column(Integer, nullable=False, default=0)
    day_amount = Column(Integer, nullable=True)
    hours = Column(Integer, nullable=True)
    # one_time|one_night
    session_type = Column(String, nullable=True)
    location = Column(String, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    preferred_attire = Column(String, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String, nullable=False,
                    server_default="pending", index=True)
    # pending|held|pending_release|released|refunded
    payment_status = Column(String, nullable=False, server_default="pending")
    hold_transaction_id = Column(Integer, ForeignKey(
        "transactions.id", ondelete="SET NULL"), nullable=True)
    release_transaction_id = Column(Integer, ForeignKey(
        "transactions.id", ondelete="SET NULL"), nullable=True)
    reject_reason = Column(Text, nullable=True)

    # Check-in
    model_checked_in_at = Column(DateTime(timezone=True), nullable=True)
    model_check_in_lat = Column(Float, nullable=True)
    model_check_in_lng = Column(Float, nullable=True)
    customer_checked_in_at = Column(DateTime(timezone=True), nullable=True)
    customer_check_in_lat = Column(Float, nullable=True)
    customer_check_in_lng = Column(Float, nullable=True)

    # Completion and escrow release
    model_completed_at = Column(DateTime(timezone=True), nullable=True)
    auto_release_at = Column(DateTime(timezone=True), nullable=True)
    completion_token = Column(String, nullable=True, unique=True)
    completion_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    dispute_reason = Column(Text, nullable=True)
    disputed_at = Column(DateTime(timezone=True), nullable=True)

    # Call fields
    # audio|video
    call_type = Column(String, nullable=True)
    # scheduled|ready_to_call|ringing|connecting|in_call|completed|missed|cancelled
    call_status = Column(String, nullable=True, index=True)
    call_room_id = Column(String, nullable=True, unique=True)
    scheduled_call_time = Column(DateTime(timezone=True), nullable=True)
    customer_peer_id = Column(String, nullable=True)
    model_peer_id = Column(String, nullable=True)
    call_ringing_at = Column(DateTime(timezone=True), nullable=True)
    call_started_at = Column(DateTime(timezone=True), nullable=True)
    call_ended_at = Column(DateTime(timezone=True), nullable=True)
    call_last_heartbeat = Column(DateTime(timezone=True), nullable=True)
    minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    # customer|model
    recipient_type = Column(String, nullable=False)
    recipient_id = Column(Integer, nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    endpoint = Column(Text, nullable=False, unique=True)
    p256dh = Column(String, nullable=False)
    auth = Column(String, nullable=False)
    # customer|model
    user_type = Column(String, nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)
    duration_days = Column(Integer, nullable=False)
    features = Column(JSON, nullable=True)
    status = Column(String, nullable=False, server_default="active")
    is_popular = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey(
        "subscription_plans.id"), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    # active|pending_payment|expired|cancelled
    status = Column(String, nullable=False, server_default="active")
    auto_renew = Column(Boolean, nullable=False, default=False)
    # wallet|manually
    payment_method = Column(String, nullable=True)
    transaction_id = Column(Integer, ForeignKey(
        "transactions.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class SubscriptionHistory(Base):
    __tablename__ = "subscription_history"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey(
        "subscription_plans.id"), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    # active|upgraded|pending_payment|expired
    status = Column(String, nullable=False)
    payment_method = Column(String, nullable=True)
    transaction_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey(
        "customers.id", ondelete="CASCADE"), nullable=False, index=True)
    model_id = Column(Integer, ForeignKey(
        "models.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey(
        "bookings.id", ondelete="SET NULL"), nullable=True)
    rating = Column(Integer, nullable=False)
    title = Column(String, nullable=True)
    review_text = Column(Text, nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("customer_id", "model_id",
                         name="uq_review_customer_model"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False, index=True)
    customer_id = Column(Integer, nullable=True)
    model_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    # success|failed
    status = Column(String, nullable=False, server_default="success")
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
