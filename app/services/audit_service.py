import functools
import inspect
import logging
from typing import Any, Dict, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import session_scope
from ..exceptions import DomainError
from ..models import AuditLog

logger = logging.getLogger(__name__)


def _identity(instance) -> Optional[int]:
    # Reads the identity key, so expired instances are not reloaded
    if instance is None:
        return None
    key = sa_inspect(instance).identity
    return key[0] if key else None


def _actors(arguments: dict) -> dict:
    customer_id = arguments.get("customer_id")
    model_id = arguments.get("model_id")
    if "customer" in arguments:
        customer_id = _identity(arguments["customer"])
    if "model" in arguments:
        model_id = _identity(arguments["model"])
    if arguments.get("role") in ("customer", "model") and arguments.get("user_id") is not None:
        if arguments["role"] == "customer":
            customer_id = arguments["user_id"]
        else:
            model_id = arguments["user_id"]
    return {"customer_id": customer_id, "model_id": model_id}


class AuditService:
    @staticmethod
    def record(
        db: AsyncSession,
        action: str,
        customer_id: Optional[int] = None,
        model_id: Optional[int] = None,
        description: Optional[str] = None,
        status: str = "success",
        payload: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Stage an audit row; it is committed together with the caller's change"""
        entry = AuditLog(
            action=action,
            customer_id=customer_id,
            model_id=model_id,
            description=description,
            status=status,
            payload=payload,
        )
        db.add(entry)
        logger.info(f"audit action={action} customer={customer_id} model={model_id} status={status}")
        return entry

    @staticmethod
    async def record_failure(
        action: str,
        customer_id: Optional[int] = None,
        model_id: Optional[int] = None,
        description: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Commit a ``failed`` audit row in its own session.

        The caller's session is about to be rolled back, so the row cannot ride
        along with it. Losing the row is logged, never raised.
        """
        try:
            async with session_scope() as db:
                AuditService.record(db, action, customer_id, model_id, description, "failed", payload)
                await db.commit()
        except Exception as e:
            logger.error(f"Could not record failed {action}: {e}")


def audit_failures(action: str):
    """Record a failed audit row whenever the wrapped transition raises a DomainError.

    Actor ids come from the ``customer``/``model`` objects, ``customer_id``/``model_id``
    or ``role``/``user_id`` arguments; ``booking_id`` lands in the payload.
    """
    def decorator(fn):
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except DomainError as e:
                arguments = signature.bind_partial(*args, **kwargs).arguments
                payload = {"error": type(e).__name__}
                if arguments.get("booking_id") is not None:
                    payload["booking_id"] = arguments["booking_id"]
                await AuditService.record_failure(
                    action, description=e.message, payload=payload, **_actors(arguments))
                raise
        return wrapper
    return decorator
