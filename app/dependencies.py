import secrets
from typing import Optional
from fastapi import Header, HTTPException, status
from .config import settings


def _matches(provided: Optional[str], expected: Optional[str]) -> bool:
    return bool(expected) and bool(provided) and secrets.compare_digest(provided, expected)


async def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """
    Dependency guarding back-office endpoints.
    Raises HTTPException unless X-Admin-Key matches the configured key.
    """
    if not _matches(x_admin_key, settings.admin_api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )


async def require_sse_secret(x_api_secret: Optional[str] = Header(None)) -> None:
    """Dependency guarding server-to-server SSE triggers (X-API-Secret)."""
    if not _matches(x_api_secret, settings.sse_api_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
