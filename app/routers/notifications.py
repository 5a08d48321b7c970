from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    CountResponse,
    NotificationResponse,
    NotificationSettingsResponse,
    NotificationSettingsUpdate,
)
from ..services.jwt_service import JWTService, Principal
from ..services.notification_broker import channel_event_stream
from ..services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Disable proxy buffering so events arrive immediately
    "X-Accel-Buffering": "no",
}


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.list_notifications(
        db, principal.role, principal.id, limit, offset, unread_only)


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return CountResponse(count=await NotificationService.unread_count(db, principal.role, principal.id))


@router.get("/stream")
async def notification_stream(
    request: Request,
    principal: Principal = Depends(JWTService.get_current_principal),
):
    """
    Server-sent events for the caller's notification channel.

    EventSource cannot send headers, so the token may be passed as ``?token=``.
    The stream opens with a ``connected`` event, then relays every
    notification as it is created, with periodic ``heartbeat`` events.
    """
    return StreamingResponse(
        channel_event_stream(principal.channel, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/settings", response_model=NotificationSettingsResponse)
async def get_settings(principal: Principal = Depends(JWTService.get_current_principal)):
    return NotificationSettingsResponse(
        send_push_noti=bool(principal.user.send_push_noti),
        send_sms_noti=bool(principal.user.send_sms_noti),
    )


@router.put("/settings", response_model=NotificationSettingsResponse)
async def update_settings(
    payload: NotificationSettingsUpdate,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.update_settings(
        db, principal.user, payload.send_push_noti, payload.send_sms_noti)


@router.post("/read-all", response_model=CountResponse)
async def mark_all_as_read(
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return CountResponse(count=await NotificationService.mark_all_as_read(db, principal.role, principal.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService.mark_as_read(db, principal.role, principal.id, notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.delete_notification(db, principal.role, principal.id, notification_id)
