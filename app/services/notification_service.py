import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..exceptions import NotFoundError
from ..models import Customer, Model, Notification
from ..utils import ensure_utc
from .notification_broker import broker, channel_for
from .push_service import PushService
from .sms_service import SMSService

logger = logging.getLogger(__name__)


class _Blank(dict):
    def __missing__(self, key):
        return ""


# type -> (title, message template)
TEMPLATES: Dict[str, tuple] = {
    "welcome": ("Welcome to XaoSao", "Hi {name}, your account is ready"),
    "profile_approved": ("Profile Approved", "Your profile has been approved. You can now log in and receive bookings"),
    "booking_created": ("New Booking Request", "{name} requested a booking for {price} {currency}"),
    "booking_edited": ("Booking Updated", "{name} updated booking #{booking_id}"),
    "booking_confirmed": ("Booking Confirmed", "{name} accepted your booking"),
    "booking_rejected": ("Booking Rejected", "{name} declined your booking. {reason}"),
    "booking_cancelled": ("Booking Cancelled", "{name} cancelled booking #{booking_id}"),
    "booking_checkin_model": ("Model Checked In", "{name} has arrived and checked in"),
    "booking_checkin_customer": ("Customer Checked In", "{name} has arrived and checked in"),
    "booking_completed": ("Service Completed", "{name} marked booking #{booking_id} as complete. Please confirm or dispute within {hours} hours"),
    "booking_confirmed_completion": ("Completion Confirmed", "{name} confirmed booking #{booking_id} was completed"),
    "booking_auto_released": ("Booking Completed", "Booking #{booking_id} was completed automatically"),
    "booking_disputed": ("Booking Disputed", "{name} opened a dispute on booking #{booking_id}"),
    "payment_released": ("Payment Released", "{amount} {currency} was added to your wallet"),
    "payment_refunded": ("Payment Refunded", "{amount} {currency} was returned to your wallet"),
    "deposit_approved": ("Deposit Approved", "Your top-up of {amount} {currency} was approved"),
    "deposit_rejected": ("Deposit Rejected", "Your top-up of {amount} {currency} was rejected. {reason}"),
    "withdraw_approved": ("Withdrawal Approved", "Your withdrawal of {amount} {currency} was approved"),
    "withdraw_rejected": ("Withdrawal Rejected", "Your withdrawal of {amount} {currency} was rejected. {reason}"),
    "incoming_call": ("Incoming Call", "{name} is calling you ({call_type})"),
    "call_missed": ("Missed Call", "Call with {name} was missed"),
    "call_ended": ("Call Ended", "Call with {name} ended after {minutes} minute(s)"),
    "subscription_activated": ("Subscription Active", "Your {plan} plan is active until {end_date}"),
}

# Also delivered by SMS when the recipient opted in
SMS_TYPES = {"booking_created", "booking_confirmed", "booking_cancelled",
             "incoming_call", "profile_approved", "payment_released"}


def serialize(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data or {},
        "created_at": ensure_utc(notification.created_at).isoformat() if notification.created_at else None,
    }


def render(notification_type: str, **fields: Any) -> tuple:
    title, template = TEMPLATES.get(notification_type, (notification_type.replace("_", " ").title(), "{message}"))
    values = _Blank({"currency": settings.currency, **fields})
    return title, " ".join(template.format_map(values).split())


def _owner_model(recipient_type: str):
    return Customer if recipient_type == "customer" else Model


class NotificationService:
    @staticmethod
    async def create_notification(
        db: AsyncSession,
        recipient_type: str,
        recipient_id: int,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        push: bool = True,
        sms: bool = False,
    ) -> Optional[Notification]:
        """Persist a notification, publish it to the recipient's SSE channel and push it.

        Delivery is best-effort; failures are logged and never raised to the caller.
        """
        notification = Notification(
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            data=data or {},
            is_read=False,
        )
        try:
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to store {notification_type} notification for {recipient_type}:{recipient_id}: {e}")
            return None

        delivered = broker.publish(channel_for(recipient_type, recipient_id), serialize(notification))
        logger.debug(f"Notification {notification.id} delivered to {delivered} SSE listeners")

        if push:
            try:
                await PushService.send_to_user(db, recipient_type, recipient_id, {
                    "title": title,
                    "body": message,
                    "tag": notification_type,
                    "data": {"notification_id": notification.id, "type": notification_type, **(data or {})},
                })
            except Exception as e:
                logger.warning(f"Push delivery failed for notification {notification.id}: {e}")

        if sms:
            owner = await db.get(_owner_model(recipient_type), recipient_id)
            if owner is not None and owner.send_sms_noti:
                await SMSService.send_sms(owner.whatsapp, f"{settings.app_name}: {message}")

        return notification

    @staticmethod
    async def notify(
        db: AsyncSession,
        recipient_type: str,
        recipient_id: int,
        notification_type: str,
        data: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> Optional[Notification]:
        """Compose a notification from its template and send it"""
        data = data or {}
        title, message = render(notification_type, **{**data, **fields})
        return await NotificationService.create_notification(
            db, recipient_type, recipient_id, notification_type, title, message, data,
            sms=notification_type in SMS_TYPES,
        )

    @staticmethod
    async def list_notifications(
        db: AsyncSession, recipient_type: str, recipient_id: int,
        limit: int = 50, offset: int = 0, unread_only: bool = False,
    ) -> List[Notification]:
        stmt = select(Notification).where(
            Notification.recipient_type == recipient_type,
            Notification.recipient_id == recipient_id,
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def unread_count(db: AsyncSession, recipient_type: str, recipient_id: int) -> int:
        count = await db.scalar(
            select(func.count(Notification.id)).where(
                Notification.recipient_type == recipient_type,
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
        )
        return count or 0

    @staticmethod
    async def _owned(db: AsyncSession, recipient_type: str, recipient_id: int, notification_id: int) -> Notification:
        notification = await db.get(Notification, notification_id)
        if (
            notification is None
            or notification.recipient_type != recipient_type
            or notification.recipient_id != recipient_id
        ):
            raise NotFoundError("Notification")
        return notification

    @staticmethod
    async def mark_as_read(db: AsyncSession, recipient_type: str, recipient_id: int, notification_id: int) -> Notification:
        notification = await NotificationService._owned(db, recipient_type, recipient_id, notification_id)
        notification.is_read = True
        await db.commit()
        return notification

    @staticmethod
    async def mark_all_as_read(db: AsyncSession, recipient_type: str, recipient_id: int) -> int:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_type == recipient_type,
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
        )
        await db.commit()
        return result.rowcount

    @staticmethod
    async def delete_notification(db: AsyncSession, recipient_type: str, recipient_id: int, notification_id: int) -> None:
        notification = await NotificationService._owned(db, recipient_type, recipient_id, notification_id)
        await db.delete(notification)
        await db.commit()

    @staticmethod
    async def update_settings(
        db: AsyncSession, user, send_push_noti: Optional[bool] = None, send_sms_noti: Optional[bool] = None,
    ) -> Dict[str, bool]:
        if send_push_noti is not None:
            user.send_push_noti = send_push_noti
        if send_sms_noti is not None:
            user.send_sms_noti = send_sms_noti
        await db.commit()
        return {"send_push_noti": user.send_push_noti, "send_sms_noti": user.send_sms_noti}
