import secrets
from datetime import datetime, timedelta, timezone
from typing import Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import Customer, Model
from ..config import settings
from ..exceptions import NotFoundError, RateLimitedError, ValidationFailedError
from ..utils import ensure_utc
from .sms_service import SMSService

Account = Union[Customer, Model]


class OTPService:
    """Password reset codes for customers and models"""

    @staticmethod
    def generate_reset_code() -> str:
        """Generate a 6-character upper-case hex code"""
        return secrets.token_hex(3).upper()

    @staticmethod
    async def _find_by_phone(db: AsyncSession, account_model, whatsapp: str) -> Account:
        stmt = select(account_model).where(account_model.whatsapp == whatsapp)
        result = await db.execute(stmt)
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError("Account")
        return account

    @staticmethod
    async def request_reset(db: AsyncSession, account_model, whatsapp: str) -> str:
        """Issue a reset code and send it by SMS; honours the resend cooldown"""
        account = await OTPService._find_by_phone(db, account_model, whatsapp)
        now = datetime.now(timezone.utc)

        cooldown_until = ensure_utc(account.reset_cooldown_until)
        if cooldown_until is not None and cooldown_until > now:
            raise RateLimitedError(int((cooldown_until - now).total_seconds()) + 1)

        code = OTPService.generate_reset_code()
        # Issuing a new code invalidates the previous one
        account.reset_token = code
        account.reset_token_expiry = now + \
            timedelta(minutes=settings.reset_token_expiry_minutes)
        account.reset_token_verified = False
        account.reset_cooldown_until = now + \
            timedelta(seconds=settings.reset_resend_cooldown_seconds)
        await db.commit()

        await SMSService.send_sms(
            account.whatsapp,
            f"{settings.app_name} password reset code: {code}. "
            f"It expires in {settings.reset_token_expiry_minutes} minutes.")
        return code

    @staticmethod
    async def _find_by_code(db: AsyncSession, account_model, code: str) -> Account:
        stmt = select(account_model).where(
            account_model.reset_token == code.strip().upper())
        result = await db.execute(stmt)
        account = result.scalars().first()
        if account is None:
            raise ValidationFailedError("Invalid or expired reset code")
        expiry = ensure_utc(account.reset_token_expiry)
        if expiry is None or expiry < datetime.now(timezone.utc):
            raise ValidationFailedError("Invalid or expired reset code")
        return account

    @staticmethod
    async def verify_reset_code(db: AsyncSession, account_model, code: str) -> Account:
        """Mark a code as verified and give the user a short window to choose a password"""
        account = await OTPService._find_by_code(db, account_model, code)
        account.reset_token_verified = True
        account.reset_token_expiry = datetime.now(timezone.utc) + \
            timedelta(minutes=settings.reset_token_verified_minutes)
        await db.commit()
        return account

    @staticmethod
    async def consume_reset_code(db: AsyncSession, account_model, code: str) -> Account:
        account = await OTPService._find_by_code(db, account_model, code)
        if not account.reset_token_verified:
            raise ValidationFailedError("Reset code has not been verified")
        account.reset_token = None
        account.reset_token_expiry = None
        account.reset_token_verified = False
        account.reset_cooldown_until = None
        return account
