from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import MessageResponse, PushSubscriptionCreate, PushUnsubscribe, VapidKeyResponse
from ..services.jwt_service import JWTService, Principal
from ..services.push_service import PushService

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/vapid-public-key", response_model=VapidKeyResponse)
async def vapid_public_key():
    """Application server key for ``PushManager.subscribe``; 503 when push is not configured."""
    return VapidKeyResponse(public_key=PushService.public_key())


@router.post("/subscribe", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def subscribe(
    payload: PushSubscriptionCreate,
    user_agent: Optional[str] = Header(None),
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await PushService.subscribe(
        db, principal.role, principal.id, payload.endpoint,
        payload.keys.p256dh, payload.keys.auth, user_agent,
    )
    return MessageResponse(message="Subscribed to push notifications")


@router.post("/unsubscribe", response_model=MessageResponse)
async def unsubscribe(
    payload: PushUnsubscribe,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    removed = await PushService.unsubscribe(db, principal.role, principal.id, payload.endpoint)
    return MessageResponse(message="Unsubscribed" if removed else "Subscription not found")


@router.delete("/subscriptions", response_model=MessageResponse)
async def unsubscribe_all(
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    removed = await PushService.remove_all(db, principal.role, principal.id)
    return MessageResponse(message=f"Removed {removed} subscriptions")
