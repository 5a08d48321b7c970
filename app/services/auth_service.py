import logging
from typing import Union

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import (
    AuthenticationError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationFailedError,
)
from ..models import Customer, Model
from .audit_service import AuditService
from .jwt_service import ROLES
from .notification_service import NotificationService
from .otp_service import OTPService
from .wallet_service import WalletService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

NUMBER_PREFIXES = {"customer": "XSC", "model": "XSM"}
NUMBER_ATTEMPTS = 5
# Shown for every login failure so the response does not reveal which check failed
INVALID_LOGIN = "Invalid phone number or password"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


async def next_account_number(db: AsyncSession, role: str, skip: int = 0) -> str:
    """Sequence after the newest account's number; ``skip`` moves past numbers found taken"""
    account_model = ROLES[role]
    prefix = NUMBER_PREFIXES[role]
    last = await db.scalar(
        select(account_model.number).order_by(account_model.id.desc()).limit(1)
    )
    sequence = 1
    if last:
        try:
            sequence = int(last.split("-")[-1]) + 1
        except ValueError:
            logger.warning(f"Unparseable account number {last}")
    return f"{prefix}-{sequence + skip:04d}"


class AuthService:
    @staticmethod
    async def register(db: AsyncSession, role: str, data: dict) -> Union[Customer, Model]:
        account_model = ROLES[role]
        existing = await db.scalar(
            select(account_model.id).where(account_model.whatsapp == data["whatsapp"])
        )
        if existing is not None:
            raise ConflictError("This phone number is already registered")

        fields = dict(data)
        password_hash = hash_password(fields.pop("password"))
        for attempt in range(NUMBER_ATTEMPTS):
            account = account_model(
                **fields,
                number=await next_account_number(db, role, skip=attempt),
                password_hash=password_hash,
                status="active" if role == "customer" else "pending",
                send_push_noti=False,
                send_sms_noti=False,
            )
            if role == "model":
                account.available_status = "offline"
                account.rating = 0
                account.total_reviews = 0
            db.add(account)
            try:
                await db.flush()
                break
            except IntegrityError:
                number = account.number
                await db.rollback()
                taken = await db.scalar(
                    select(account_model.id).where(account_model.whatsapp == data["whatsapp"]))
                if taken is not None:
                    raise ConflictError("This phone number is already registered")
                # Another registration took the same sequential number
                logger.warning(f"Account number {number} already taken, allocating the next one")
        else:
            raise ServiceUnavailableError("Could not allocate an account number, please try again")

        if role == "customer":
            await WalletService.create_wallet(db, customer_id=account.id)
        else:
            await WalletService.create_wallet(db, model_id=account.id)

        AuditService.record(db, f"{role}_registered",
                            customer_id=account.id if role == "customer" else None,
                            model_id=account.id if role == "model" else None,
                            description=f"{account.number} registered")
        await db.commit()
        await db.refresh(account)
        logger.info(f"Registered {role} {account.number}")

        await NotificationService.notify(db, role, account.id, "welcome", {}, name=account.first_name)
        return account

    @staticmethod
    async def authenticate(db: AsyncSession, role: str, whatsapp: str, password: str) -> Union[Customer, Model]:
        account_model = ROLES[role]
        account = await db.scalar(select(account_model).where(account_model.whatsapp == whatsapp))
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError(INVALID_LOGIN)
        if account.status != "active":
            raise AuthenticationError(INVALID_LOGIN)
        return account

    @staticmethod
    async def change_password(db: AsyncSession, account: Union[Customer, Model], old_password: str, new_password: str) -> None:
        if not verify_password(old_password, account.password_hash):
            raise ValidationFailedError("Current password is incorrect")
        account.password_hash = hash_password(new_password)
        await db.commit()

    @staticmethod
    async def reset_password(db: AsyncSession, role: str, code: str, new_password: str) -> None:
        account = await OTPService.consume_reset_code(db, ROLES[role], code)
        account.password_hash = hash_password(new_password)
        AuditService.record(db, f"{role}_password_reset",
                            customer_id=account.id if role == "customer" else None,
                            model_id=account.id if role == "model" else None)
        await db.commit()

    @staticmethod
    async def approve_model(db: AsyncSession, model_id: int) -> Model:
        model = await db.get(Model, model_id)
        if model is None:
            raise NotFoundError("Model")
        if model.status != "pending":
            raise InvalidStateError("Only pending models can be approved")
        model.status = "active"
        AuditService.record(db, "model_approved", model_id=model.id)
        await db.commit()
        await db.refresh(model)

        await NotificationService.notify(db, "model", model.id, "profile_approved", {})
        return model
