from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from ..config import settings
from ..database import get_db
from ..models import Customer, Model

# JWT token scheme; EventSource clients cannot set headers so the token may
# also arrive as ?token=
security = HTTPBearer(auto_error=False)

ROLES = {"customer": Customer, "model": Model}


@dataclass
class Principal:
    """The authenticated caller: a customer or a model."""
    role: str
    user: Union[Customer, Model]

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def channel(self) -> str:
        return f"{self.role}:{self.user.id}"


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class JWTService:
    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()

        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + \
                timedelta(minutes=settings.jwt_expiry_minutes)

        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(
            to_encode,
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm
        )
        return encoded_jwt

    @staticmethod
    def token_lifetime_minutes(remember_me: bool = False) -> int:
        if remember_me:
            return settings.remember_me_expiry_minutes
        return settings.jwt_expiry_minutes

    @staticmethod
    def create_token(user_id: int, role: str, remember_me: bool = False) -> str:
        """Create a JWT token for a customer or model session"""
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        data = {"sub": str(user_id), "role": role}
        minutes = JWTService.token_lifetime_minutes(remember_me)
        return JWTService.create_access_token(data, timedelta(minutes=minutes))

    @staticmethod
    def verify_token(token: str) -> dict:
        """Verify and decode a JWT token"""
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm]
            )
            return payload
        except JWTError:
            raise _credentials_error()

    @staticmethod
    async def principal_from_token(token: str, db: AsyncSession) -> Principal:
        payload = JWTService.verify_token(token)

        role = payload.get("role")
        user_id_str = payload.get("sub")
        if role not in ROLES or user_id_str is None:
            raise _credentials_error()

        try:
            user_id = int(user_id_str)
        except (ValueError, TypeError):
            raise _credentials_error("Invalid user ID in token")

        user = await db.get(ROLES[role], user_id)
        if user is None:
            raise _credentials_error("User not found")
        if user.status != "active":
            raise _credentials_error("Account is not active")

        return Principal(role=role, user=user)

    @staticmethod
    async def get_current_principal(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
        token: Optional[str] = Query(None, include_in_schema=False),
        db: AsyncSession = Depends(get_db)
    ) -> Principal:
        """Resolve the caller from the Bearer header or the ?token= query parameter"""
        raw = credentials.credentials if credentials else token
        if not raw:
            raise _credentials_error("Not authenticated")
        return await JWTService.principal_from_token(raw, db)


async def get_current_customer(
    principal: Principal = Depends(JWTService.get_current_principal),
) -> Customer:
    if principal.role != "customer":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer access required"
        )
    return principal.user


async def get_current_model(
    principal: Principal = Depends(JWTService.get_current_principal),
) -> Model:
    if principal.role != "model":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Model access required"
        )
    return principal.user
