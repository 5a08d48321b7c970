import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import ConflictError, InvalidStateError, NotFoundError
from ..models import Subscription, SubscriptionHistory, SubscriptionPlan, Transaction
from ..utils import ensure_utc, utcnow
from .audit_service import AuditService
from .notification_service import NotificationService
from .subscription_events import hub
from .wallet_service import WalletService

logger = logging.getLogger(__name__)


def remaining_days(end_date: datetime, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    seconds = (ensure_utc(end_date) - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def _history_from(subscription: Subscription, status: str) -> SubscriptionHistory:
    return SubscriptionHistory(
        customer_id=subscription.customer_id,
        plan_id=subscription.plan_id,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        status=status,
        payment_method=subscription.payment_method,
        transaction_id=subscription.transaction_id,
        notes=subscription.notes,
    )


class SubscriptionService:
    @staticmethod
    async def _active(db: AsyncSession, customer_id: int) -> Optional[Subscription]:
        return await db.scalar(
            select(Subscription)
            .where(
                Subscription.customer_id == customer_id,
                Subscription.status == "active",
                Subscription.end_date >= utcnow(),
            )
            .order_by(Subscription.end_date.desc())
            .limit(1)
        )

    @staticmethod
    async def _pending(db: AsyncSession, customer_id: int) -> Optional[Subscription]:
        return await db.scalar(
            select(Subscription)
            .where(Subscription.customer_id == customer_id, Subscription.status == "pending_payment")
            .order_by(Subscription.id.desc())
            .limit(1)
        )

    @staticmethod
    async def has_active_subscription(db: AsyncSession, customer_id: int) -> bool:
        return await SubscriptionService._active(db, customer_id) is not None

    @staticmethod
    async def has_pending_subscription(db: AsyncSession, customer_id: int) -> bool:
        return await SubscriptionService._pending(db, customer_id) is not None

    @staticmethod
    async def status(db: AsyncSession, customer_id: int) -> dict:
        active = await SubscriptionService._active(db, customer_id)
        pending = await SubscriptionService._pending(db, customer_id)
        return {"has_active": active is not None, "has_pending": pending is not None,
                "subscription": active or pending}

    @staticmethod
    async def list_packages(db: AsyncSession, customer_id: int) -> List[dict]:
        result = await db.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.status == "active")
            .order_by(SubscriptionPlan.price)
        )
        active = await SubscriptionService._active(db, customer_id)
        current_plan = active.plan_id if active else None
        return [
            {**{c.name: getattr(plan, c.name) for c in SubscriptionPlan.__table__.columns},
             "current": plan.id == current_plan}
            for plan in result.scalars().all()
        ]

    @staticmethod
    async def _plan(db: AsyncSession, plan_id: int) -> SubscriptionPlan:
        plan = await db.get(SubscriptionPlan, plan_id)
        if plan is None or plan.status != "active":
            raise NotFoundError("Plan")
        return plan

    @staticmethod
    async def subscribe_with_wallet(db: AsyncSession, customer_id: int, plan_id: int) -> Subscription:
        """Buy a plan from the wallet; days left on an active plan carry over.

        The active row (or the newest lapsed one) is reused. A request awaiting
        payment approval is a separate row and stays as it is.
        """
        plan = await SubscriptionService._plan(db, plan_id)
        active = await SubscriptionService._active(db, customer_id)
        existing = active
        if existing is None:
            existing = await db.scalar(
                select(Subscription)
                .where(Subscription.customer_id == customer_id, Subscription.status != "pending_payment")
                .order_by(Subscription.id.desc())
                .limit(1)
            )

        now = utcnow()
        carried = remaining_days(active.end_date, now) if active is not None else 0
        debit = await WalletService.deduct(db, customer_id, plan.price, f"Subscription: {plan.name}")
        if active is not None:
            db.add(_history_from(active, "upgraded"))
        total_days = plan.duration_days + carried
        notes = (f"Upgraded with {carried} days carried over from the previous plan"
                 if carried else "New subscription activated")

        subscription = existing or Subscription(customer_id=customer_id)
        if existing is None:
            db.add(subscription)
        subscription.plan_id = plan.id
        subscription.start_date = now
        subscription.end_date = now + timedelta(days=total_days)
        subscription.status = "active"
        subscription.auto_renew = True
        subscription.payment_method = "wallet"
        subscription.transaction_id = debit.id
        subscription.notes = notes
        await db.flush()

        db.add(_history_from(subscription, "active"))
        AuditService.record(db, "subscription_wallet", customer_id=customer_id,
                            description=f"Subscribed to {plan.name} for {total_days} days",
                            payload={"plan_id": plan.id, "carried_days": carried, "transaction_id": debit.id})
        await db.commit()
        await db.refresh(subscription)
        return subscription

    @staticmethod
    async def create_pending_subscription(
        db: AsyncSession, customer_id: int, plan_id: int, transaction_id: Optional[int] = None
    ) -> Subscription:
        """Request a plan paid outside the wallet; an admin activates it"""
        plan = await SubscriptionService._plan(db, plan_id)
        if await SubscriptionService._pending(db, customer_id) is not None:
            raise ConflictError("You already have a subscription awaiting payment approval")
        if transaction_id is not None:
            tx = await db.get(Transaction, transaction_id)
            if tx is None or tx.customer_id != customer_id:
                raise NotFoundError("Transaction")

        now = utcnow()
        subscription = Subscription(
            customer_id=customer_id,
            plan_id=plan.id,
            start_date=now,
            end_date=now + timedelta(days=plan.duration_days),
            status="pending_payment",
            auto_renew=False,
            payment_method="manually",
            transaction_id=transaction_id,
            notes="Awaiting payment approval",
        )
        db.add(subscription)
        await db.flush()
        db.add(_history_from(subscription, "pending_payment"))
        AuditService.record(db, "subscription_pending", customer_id=customer_id,
                            payload={"plan_id": plan.id, "subscription_id": subscription.id})
        await db.commit()
        await db.refresh(subscription)
        return subscription

    @staticmethod
    async def activate_pending(db: AsyncSession, subscription_id: int) -> Subscription:
        subscription = await db.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription")
        if subscription.status != "pending_payment":
            raise InvalidStateError("Only subscriptions awaiting payment can be activated")
        plan = await db.get(SubscriptionPlan, subscription.plan_id)

        # A plan bought from the wallet meanwhile is folded in, so only one row stays active
        now = utcnow()
        carried = 0
        current = await SubscriptionService._active(db, subscription.customer_id)
        if current is not None:
            carried = remaining_days(current.end_date, now)
            db.add(_history_from(current, "upgraded"))
            current.status = "cancelled"
            current.notes = f"Replaced by subscription #{subscription.id}"

        subscription.start_date = now
        subscription.end_date = now + timedelta(days=plan.duration_days + carried)
        subscription.status = "active"
        subscription.notes = (f"Activated after payment approval with {carried} days carried over"
                              if carried else "Activated after payment approval")
        db.add(_history_from(subscription, "active"))
        AuditService.record(db, "subscription_activated", customer_id=subscription.customer_id,
                            payload={"subscription_id": subscription.id, "carried_days": carried})
        await db.commit()
        await db.refresh(subscription)

        delivered = hub.send_subscription_event(
            subscription.customer_id, {"subscription_id": subscription.id, "status": "active"})
        logger.info(f"Subscription {subscription.id} activated, live event delivered={delivered}")
        await NotificationService.notify(
            db, "customer", subscription.customer_id, "subscription_activated",
            {"subscription_id": subscription.id},
            plan=plan.name, end_date=subscription.end_date.date().isoformat())
        return subscription

    @staticmethod
    async def history(db: AsyncSession, customer_id: int, limit: int = 20, offset: int = 0) -> List[SubscriptionHistory]:
        result = await db.execute(
            select(SubscriptionHistory)
            .where(SubscriptionHistory.customer_id == customer_id)
            .order_by(SubscriptionHistory.created_at.desc(), SubscriptionHistory.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def expire_subscriptions(db: AsyncSession, now: Optional[datetime] = None) -> int:
        result = await db.execute(
            update(Subscription)
            .where(Subscription.status == "active", Subscription.end_date < (now or utcnow()))
            .values(status="expired")
        )
        await db.commit()
        return result.rowcount
