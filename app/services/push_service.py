"""
VAPID web push delivery.

pywebpush is synchronous, so each send runs in a worker thread the same way
blocking SDK calls are offloaded elsewhere in the app.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from pywebpush import webpush, WebPushException
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import ServiceUnavailableError
from ..models import Customer, Model, PushSubscription

logger = logging.getLogger(__name__)

ICON = "/icons/icon-192x192.png"
BADGE = "/icons/icon-72x72.png"
DEFAULT_URLS = {
    "customer": "/customer/notifications",
    "model": "/model/notifications",
}
# Push services answer these when a subscription is gone for good
GONE_STATUSES = {404, 410}


def vapid_configured() -> bool:
    return bool(settings.vapid_public_key and settings.vapid_private_key)


def build_payload(user_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(payload.get("data") or {})
    data.setdefault("url", DEFAULT_URLS.get(user_type, "/"))
    return {
        "title": payload.get("title", settings.app_name),
        "body": payload.get("body", ""),
        "icon": payload.get("icon", ICON),
        "badge": payload.get("badge", BADGE),
        "tag": payload.get("tag", "xaosao-notification"),
        "data": data,
    }


async def _owner(db: AsyncSession, user_type: str, user_id: int):
    owner_model = Customer if user_type == "customer" else Model
    return await db.get(owner_model, user_id)


class PushService:
    @staticmethod
    def public_key() -> str:
        if not vapid_configured():
            raise ServiceUnavailableError("Push notifications are not configured")
        return settings.vapid_public_key

    @staticmethod
    async def subscribe(
        db: AsyncSession,
        user_type: str,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> PushSubscription:
        """Register a browser subscription; re-subscribing the same endpoint updates it"""
        result = await db.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            subscription = PushSubscription(endpoint=endpoint)
            db.add(subscription)
        subscription.p256dh = p256dh
        subscription.auth = auth
        subscription.user_type = user_type
        subscription.user_id = user_id
        subscription.user_agent = user_agent

        owner = await _owner(db, user_type, user_id)
        if owner is not None:
            owner.send_push_noti = True

        await db.commit()
        await db.refresh(subscription)
        logger.info(f"Push subscription saved for {user_type}:{user_id}")
        return subscription

    @staticmethod
    async def unsubscribe(db: AsyncSession, user_type: str, user_id: int, endpoint: str) -> bool:
        result = await db.execute(
            delete(PushSubscription).where(
                PushSubscription.endpoint == endpoint,
                PushSubscription.user_type == user_type,
                PushSubscription.user_id == user_id,
            )
        )
        removed = result.rowcount > 0

        remaining = await db.scalar(
            select(func.count(PushSubscription.id)).where(
                PushSubscription.user_type == user_type,
                PushSubscription.user_id == user_id,
            )
        )
        if not remaining:
            owner = await _owner(db, user_type, user_id)
            if owner is not None:
                owner.send_push_noti = False

        await db.commit()
        return removed

    @staticmethod
    async def remove_all(db: AsyncSession, user_type: str, user_id: int) -> int:
        result = await db.execute(
            delete(PushSubscription).where(
                PushSubscription.user_type == user_type,
                PushSubscription.user_id == user_id,
            )
        )
        owner = await _owner(db, user_type, user_id)
        if owner is not None:
            owner.send_push_noti = False
        await db.commit()
        return result.rowcount

    @staticmethod
    def _send_one(subscription_info: Dict[str, Any], body: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=body,
            vapid_private_key=settings.vapid_private_key,
            vapid_claims={"sub": settings.vapid_email},
            timeout=10,
        )

    @staticmethod
    async def send_to_user(
        db: AsyncSession, user_type: str, user_id: int, payload: Dict[str, Any]
    ) -> Dict[str, int]:
        """Push a notification to every device of a user; returns sent/failed counts"""
        if not vapid_configured():
            return {"sent": 0, "failed": 0}

        owner = await _owner(db, user_type, user_id)
        if owner is None or not owner.send_push_noti:
            return {"sent": 0, "failed": 0}

        result = await db.execute(
            select(PushSubscription).where(
                PushSubscription.user_type == user_type,
                PushSubscription.user_id == user_id,
            )
        )
        subscriptions = result.scalars().all()
        body = json.dumps(build_payload(user_type, payload))

        sent = failed = 0
        gone = []
        for subscription in subscriptions:
            info = {
                "endpoint": subscription.endpoint,
                "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
            }
            try:
                await asyncio.to_thread(PushService._send_one, info, body)
                sent += 1
            except WebPushException as e:
                failed += 1
                status_code = getattr(e.response, "status_code", None)
                if status_code in GONE_STATUSES:
                    gone.append(subscription.id)
                logger.warning(
                    f"Web push failed for {user_type}:{user_id} status={status_code}: {e}")

        if gone:
            await db.execute(delete(PushSubscription).where(PushSubscription.id.in_(gone)))
            await db.commit()
            logger.info(f"Removed {len(gone)} expired push subscriptions")

        return {"sent": sent, "failed": failed}
