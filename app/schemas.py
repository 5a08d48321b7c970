from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List, Literal, Any
from enum import Enum
from datetime import datetime, date


class APIModel(BaseModel):
    # Several fields legitimately start with "model_" (model_id, model_peer_id)
    model_config = ConfigDict(protected_namespaces=())


class ORMModel(APIModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class RoleEnum(str, Enum):
    customer = "customer"
    model = "model"


# Auth

def _check_password_strength(v: str) -> str:
    if not any(c.isalpha() for c in v) or not any(c.isdigit() for c in v):
        raise ValueError(
            "Password must contain at least one letter and one number")
    return v


class CustomerRegister(APIModel):
    first_name: str = Field(..., min_length=1, examples=["Noy"])
    last_name: Optional[str] = Field(None, examples=["Phommachanh"])
    username: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    dob: Optional[date] = None
    whatsapp: str = Field(..., min_length=8, max_length=15,
                          examples=["2055551234"])
    password: str = Field(..., min_length=8, examples=["secret123"])
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    country: Optional[str] = None

    @field_validator("whatsapp")
    @classmethod
    def digits_only(cls, v: str) -> str:
        v = v.strip().replace(" ", "").lstrip("+")
        if not v.isdigit():
            raise ValueError("whatsapp must contain digits only")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class ModelRegister(CustomerRegister):
    bio: Optional[str] = None
    address: Optional[str] = None


class LoginRequest(APIModel):
    whatsapp: str
    password: str
    remember_me: bool = False


class TokenResponse(APIModel):
    access_token: str
    token_type: str = "bearer"
    role: RoleEnum
    user_id: int
    expires_in_minutes: int


class ForgotPasswordRequest(APIModel):
    whatsapp: str


class ForgotPasswordResponse(APIModel):
    message: str
    expires_in_minutes: int
    # Only populated in debug mode
    reset_code: Optional[str] = None


class VerifyResetCodeRequest(APIModel):
    code: str = Field(..., min_length=6, max_length=6)


class ResetPasswordRequest(APIModel):
    code: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class ChangePasswordRequest(APIModel):
    old_password: str
    new_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)


class MessageResponse(APIModel):
    message: str


class CustomerProfile(ORMModel):
    id: int
    number: str
    first_name: str
    last_name: Optional[str] = None
    username: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[date] = None
    whatsapp: str
    status: str
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    profile_url: Optional[str] = None
    send_push_noti: bool
    send_sms_noti: bool
    created_at: datetime


class ModelProfile(CustomerProfile):
    bio: Optional[str] = None
    address: Optional[str] = None
    available_status: str
    rating: float
    total_reviews: int


# Wallet

class WalletResponse(ORMModel):
    id: int
    customer_id: Optional[int] = None
    model_id: Optional[int] = None
    total_balance: int
    total_recharge: int
    total_deposit: int
    status: str


class TopUpRequest(APIModel):
    amount: int = Field(..., gt=0, examples=[100000])
    payment_slip: Optional[str] = Field(
        None, examples=["https://cdn.example.com/slips/123.jpg"])


class WithdrawRequest(APIModel):
    amount: int = Field(..., gt=0)
    bank_account: str = Field(..., min_length=3, examples=["BCEL 0101-12-00123456"])


class TransactionUpdate(APIModel):
    amount: Optional[int] = Field(None, gt=0)
    payment_slip: Optional[str] = None


class TransactionResponse(ORMModel):
    id: int
    identifier: str
    amount: int
    status: str
    commission: Optional[int] = None
    fee: Optional[int] = None
    payment_slip: Optional[str] = None
    reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    customer_id: Optional[int] = None
    model_id: Optional[int] = None
    created_at: datetime


class ModelWalletSummary(APIModel):
    total_income: int
    total_available: int
    pending_balance: int


class RejectRequest(APIModel):
    reason: Optional[str] = Field(None, max_length=500)


# Services catalogue

class BillingTypeEnum(str, Enum):
    per_day = "per_day"
    per_hour = "per_hour"
    per_session = "per_session"
    per_minute = "per_minute"


class ServiceResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    billing_type: BillingTypeEnum
    base_rate: int
    hourly_rate: Optional[int] = None
    one_time_price: Optional[int] = None
    one_night_price: Optional[int] = None
    minute_rate: Optional[int] = None
    commission: float
    status: str


class ModelServiceRates(APIModel):
    custom_rate: Optional[int] = Field(None, ge=0)
    custom_hourly_rate: Optional[int] = Field(None, ge=0)
    custom_one_time_price: Optional[int] = Field(None, ge=0)
    custom_one_night_price: Optional[int] = Field(None, ge=0)
    custom_minute_rate: Optional[int] = Field(None, ge=0)
    service_location: Optional[str] = None


class ModelServiceApply(ModelServiceRates):
    service_id: int


class ModelServiceUpdate(ModelServiceRates):
    is_available: Optional[bool] = None


class ModelServiceResponse(ORMModel):
    id: int
    model_id: int
    service_id: int
    custom_rate: Optional[int] = None
    custom_hourly_rate: Optional[int] = None
    custom_one_time_price: Optional[int] = None
    custom_one_night_price: Optional[int] = None
    custom_minute_rate: Optional[int] = None
    service_location: Optional[str] = None
    is_available: bool
    status: str


class ServiceWithApplication(APIModel):
    service: ServiceResponse
    application: Optional[ModelServiceResponse] = None


class PriceQuote(APIModel):
    model_service_id: int
    billing_type: BillingTypeEnum
    unit_price: int
    quantity: int
    total: int


# Profiles and discovery

class AvailabilityEnum(str, Enum):
    online = "online"
    offline = "offline"
    busy = "busy"


class ModelCard(ORMModel):
    id: int
    first_name: str
    last_name: Optional[str] = None
    gender: Optional[str] = None
    dob: Optional[date] = None
    bio: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    profile_url: Optional[str] = None
    available_status: AvailabilityEnum
    rating: float
    total_reviews: int
    distance_km: Optional[float] = None


class ModelPublicProfile(ModelCard):
    services: List[ServiceWithApplication] = []


class CustomerProfileUpdate(APIModel):
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = None
    username: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    dob: Optional[date] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    country: Optional[str] = None
    profile_url: Optional[str] = None


class ModelProfileUpdate(CustomerProfileUpdate):
    bio: Optional[str] = Field(None, max_length=1000)
    address: Optional[str] = None


class AvailabilityUpdate(APIModel):
    available_status: AvailabilityEnum


class SettingsUpdate(APIModel):
    send_push_noti: Optional[bool] = None
    send_sms_noti: Optional[bool] = None


# Bookings

class SessionTypeEnum(str, Enum):
    one_time = "one_time"
    one_night = "one_night"


class BookingCreate(APIModel):
    model_service_id: int
    day_amount: Optional[int] = Field(None, ge=1, le=30)
    hours: Optional[int] = Field(None, ge=1, le=24)
    session_type: Optional[SessionTypeEnum] = None
    location: Optional[str] = Field(None, max_length=500)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    preferred_attire: Optional[str] = Field(None, max_length=200)
    start_date: datetime
    end_date: Optional[datetime] = None


class BookingUpdate(APIModel):
    day_amount: Optional[int] = Field(None, ge=1, le=30)
    hours: Optional[int] = Field(None, ge=1, le=24)
    session_type: Optional[SessionTypeEnum] = None
    location: Optional[str] = Field(None, max_length=500)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)
    preferred_attire: Optional[str] = Field(None, max_length=200)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BookingResponse(ORMModel):
    id: int
    customer_id: int
    model_id: int
    model_service_id: Optional[int] = None
    price: int
    day_amount: Optional[int] = None
    hours: Optional[int] = None
    session_type: Optional[str] = None
    location: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    preferred_attire: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str
    payment_status: str
    reject_reason: Optional[str] = None
    model_checked_in_at: Optional[datetime] = None
    customer_checked_in_at: Optional[datetime] = None
    model_completed_at: Optional[datetime] = None
    auto_release_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    disputed_at: Optional[datetime] = None
    created_at: datetime


class CompletionResponse(BookingResponse):
    """Returned to the model only; the token is rendered as a QR code."""
    completion_token: Optional[str] = None
    completion_token_expires_at: Optional[datetime] = None


class CheckInRequest(APIModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DisputeRequest(APIModel):
    reason: str


class ConfirmByTokenRequest(APIModel):
    token: str = Field(..., min_length=4)


class CheckInStatusResponse(APIModel):
    booking_id: int
    status: str
    model_checked_in: bool
    customer_checked_in: bool
    both_checked_in: bool
    model_checked_in_at: Optional[datetime] = None
    customer_checked_in_at: Optional[datetime] = None
    hours_until_auto_release: Optional[int] = None


class CountResponse(APIModel):
    count: int


class AutoReleaseResult(APIModel):
    booking_id: int
    success: bool
    error: Optional[str] = None


# Calls

class CallBookingCreate(APIModel):
    model_service_id: int
    call_type: Literal["audio", "video"] = "video"
    scheduled_time: Optional[datetime] = None


class CallSessionResponse(ORMModel):
    id: int
    customer_id: int
    model_id: int
    model_service_id: Optional[int] = None
    status: str
    payment_status: str
    call_type: Optional[str] = None
    call_status: Optional[str] = None
    call_room_id: Optional[str] = None
    scheduled_call_time: Optional[datetime] = None
    customer_peer_id: Optional[str] = None
    model_peer_id: Optional[str] = None
    call_started_at: Optional[datetime] = None
    call_ended_at: Optional[datetime] = None
    minutes: Optional[int] = None
    price: int
    minute_rate: int = 0
    hold_amount: int = 0
    max_minutes: int = 0
    duration_seconds: int = 0
    created_at: datetime


class PeerRegisterRequest(APIModel):
    peer_id: str = Field(..., min_length=1, max_length=128)


class HeartbeatResponse(APIModel):
    booking_id: int
    duration_seconds: int
    remaining_balance: int


class CallEndResponse(APIModel):
    booking_id: int
    minutes: int
    cost: int
    refunded: int
    ended_by: str


# Notifications

class NotificationResponse(ORMModel):
    id: int
    type: str
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    is_read: bool
    created_at: datetime


class NotificationSettingsUpdate(APIModel):
    send_push_noti: Optional[bool] = None
    send_sms_noti: Optional[bool] = None


class NotificationSettingsResponse(APIModel):
    send_push_noti: bool
    send_sms_noti: bool


# Push

class VapidKeyResponse(APIModel):
    public_key: str


class PushKeys(APIModel):
    p256dh: str
    auth: str


class PushSubscriptionCreate(APIModel):
    endpoint: str = Field(..., min_length=10)
    keys: PushKeys


class PushUnsubscribe(APIModel):
    endpoint: str


class PushSendResult(APIModel):
    sent: int
    failed: int


# Packages and subscriptions

class PlanResponse(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    price: int
    duration_days: int
    features: Optional[Any] = None
    status: str
    is_popular: bool
    current: bool = False


class SubscribeRequest(APIModel):
    plan_id: int


class PendingSubscriptionRequest(APIModel):
    plan_id: int
    transaction_id: Optional[int] = None


class SubscriptionResponse(ORMModel):
    id: int
    customer_id: int
    plan_id: int
    start_date: datetime
    end_date: datetime
    status: str
    auto_renew: bool
    payment_method: Optional[str] = None
    transaction_id: Optional[int] = None


class SubscriptionHistoryResponse(ORMModel):
    id: int
    plan_id: int
    start_date: datetime
    end_date: datetime
    status: str
    payment_method: Optional[str] = None
    created_at: datetime


class SubscriptionStatusResponse(APIModel):
    has_active: bool
    has_pending: bool
    subscription: Optional[SubscriptionResponse] = None


class SubscriptionEventTrigger(APIModel):
    customer_id: Optional[int] = None
    subscription_id: Optional[int] = None
    status: Optional[str] = None


# Reviews

class ReviewCreate(APIModel):
    model_id: int
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=200)
    review_text: Optional[str] = Field(None, max_length=2000)
    is_anonymous: bool = False


class ReviewResponse(ORMModel):
    id: int
    model_id: int
    rating: int
    title: Optional[str] = None
    review_text: Optional[str] = None
    is_anonymous: bool
    customer_name: Optional[str] = None
    created_at: datetime


class CanReviewResponse(APIModel):
    can_review: bool
    reason: Optional[Literal["already_reviewed", "no_completed_booking"]] = None


class PaginatedReviews(APIModel):
    items: List[ReviewResponse]
    total: int
    page: int
    limit: int
