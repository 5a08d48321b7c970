from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timedelta, timezone

from ..database import get_db
from ..schemas import (
    ChangePasswordRequest,
    CustomerProfile,
    CustomerRegister,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    ModelProfile,
    ModelRegister,
    ResetPasswordRequest,
    RoleEnum,
    TokenResponse,
    VerifyResetCodeRequest,
)
from ..services.auth_service import AuthService
from ..services.jwt_service import JWTService, Principal, ROLES
from ..services.otp_service import OTPService
from ..config import settings


# Simple in-memory throttle store (role+phone+ip → list of timestamps)
_login_attempt_log: dict[tuple[str, str, str], list[datetime]] = {}
LOGIN_ATTEMPTS_PER_MINUTE = 10


def _check_rate_limit(store: dict, key: tuple, limit: int, window_seconds: int = 60) -> None:
    now = datetime.now(timezone.utc)
    window_start = now - timedelta(seconds=window_seconds)
    attempts = [t for t in store.get(key, []) if t > window_start]
    if len(attempts) >= limit:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again in a minute."
        )
    attempts.append(now)
    store[key] = attempts


router = APIRouter(
    prefix="/auth",
    tags=["authentication"],
    responses={
        401: {"description": "Invalid credentials"},
        429: {"description": "Rate limit exceeded"},
    }
)


def _token_response(role: str, user_id: int, remember_me: bool = False) -> TokenResponse:
    return TokenResponse(
        access_token=JWTService.create_token(user_id, role, remember_me),
        role=role,
        user_id=user_id,
        expires_in_minutes=JWTService.token_lifetime_minutes(remember_me),
    )


@router.post("/customer/register", response_model=TokenResponse, status_code=201)
async def register_customer(payload: CustomerRegister, db: AsyncSession = Depends(get_db)):
    """
    Register a customer account.

    Creates the customer's wallet and returns a session token straight away.
    """
    customer = await AuthService.register(db, "customer", payload.model_dump())
    return _token_response("customer", customer.id)


@router.post("/model/register", response_model=ModelProfile, status_code=201)
async def register_model(payload: ModelRegister, db: AsyncSession = Depends(get_db)):
    """
    Register a model account.

    New models start in **pending** status and can log in only after an
    administrator approves the profile.
    """
    return await AuthService.register(db, "model", payload.model_dump())


@router.post("/{role}/login", response_model=TokenResponse)
async def login(role: RoleEnum, payload: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Exchange phone number and password for a bearer token."""
    client_ip = request.client.host if request.client else "unknown"
    _check_rate_limit(_login_attempt_log, (role.value, payload.whatsapp, client_ip),
                      LOGIN_ATTEMPTS_PER_MINUTE)
    account = await AuthService.authenticate(db, role.value, payload.whatsapp, payload.password)
    return _token_response(role.value, account.id, payload.remember_me)


@router.post("/{role}/forgot-password", response_model=ForgotPasswordResponse)
async def forgot_password(role: RoleEnum, payload: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """
    Send a password reset code by SMS.

    **Development Mode:** the code is returned in the response.
    """
    code = await OTPService.request_reset(db, ROLES[role.value], payload.whatsapp)
    return ForgotPasswordResponse(
        message="A reset code has been sent to your phone",
        expires_in_minutes=settings.reset_token_expiry_minutes,
        reset_code=code if settings.debug else None,
    )


@router.post("/{role}/resend-code", response_model=ForgotPasswordResponse)
async def resend_reset_code(role: RoleEnum, payload: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Issue a fresh reset code once the resend cooldown has passed."""
    return await forgot_password(role, payload, db)


@router.post("/{role}/verify-code", response_model=MessageResponse)
async def verify_reset_code(role: RoleEnum, payload: VerifyResetCodeRequest, db: AsyncSession = Depends(get_db)):
    await OTPService.verify_reset_code(db, ROLES[role.value], payload.code)
    return MessageResponse(
        message=f"Code verified. Choose a new password within {settings.reset_token_verified_minutes} minutes")


@router.post("/{role}/reset-password", response_model=MessageResponse)
async def reset_password(role: RoleEnum, payload: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await AuthService.reset_password(db, role.value, payload.code, payload.new_password)
    return MessageResponse(message="Password has been reset. You can now log in")


@router.get("/me", response_model=ModelProfile | CustomerProfile)
async def me(principal: Principal = Depends(JWTService.get_current_principal)):
    """Return the profile of the authenticated customer or model."""
    if principal.role == "model":
        return ModelProfile.model_validate(principal.user)
    return CustomerProfile.model_validate(principal.user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await AuthService.change_password(db, principal.user, payload.old_password, payload.new_password)
    return MessageResponse(message="Password changed")
