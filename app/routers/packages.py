import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import require_sse_secret
from ..models import Customer
from ..schemas import (
    MessageResponse,
    PendingSubscriptionRequest,
    PlanResponse,
    SubscribeRequest,
    SubscriptionEventTrigger,
    SubscriptionHistoryResponse,
    SubscriptionResponse,
    SubscriptionStatusResponse,
)
from ..services.jwt_service import get_current_customer
from ..services.subscription_events import hub, subscription_event_stream
from ..services.subscription_service import SubscriptionService
from .notifications import SSE_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages", tags=["packages"])


@router.get("", response_model=List[PlanResponse])
async def list_packages(
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Active plans, cheapest first, with the customer's current plan flagged."""
    return await SubscriptionService.list_packages(db, customer.id)


@router.get("/status", response_model=SubscriptionStatusResponse)
async def subscription_status(
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await SubscriptionService.status(db, customer.id)


@router.post("/subscribe", response_model=SubscriptionResponse)
async def subscribe_with_wallet(
    payload: SubscribeRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Buy a plan with wallet balance.

    Whole days left on a currently active plan are added to the new one.
    """
    return await SubscriptionService.subscribe_with_wallet(db, customer.id, payload.plan_id)


@router.post("/pending", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_pending_subscription(
    payload: PendingSubscriptionRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Request a plan paid by bank transfer; it becomes active once an administrator approves it."""
    return await SubscriptionService.create_pending_subscription(
        db, customer.id, payload.plan_id, payload.transaction_id)


@router.get("/history", response_model=List[SubscriptionHistoryResponse])
async def subscription_history(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    return await SubscriptionService.history(db, customer.id, limit, offset)


@router.get("/subscription-events")
async def subscription_events(
    request: Request,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Wait for a pending subscription to be activated.

    Emits ``connected`` then heartbeats, and finally either a
    ``subscription-activated`` event or a ``timeout`` event before closing.
    """
    if not await SubscriptionService.has_pending_subscription(db, customer.id):
        raise HTTPException(status_code=400, detail="No pending subscription")
    return StreamingResponse(
        subscription_event_stream(customer.id, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post(
    "/subscription-events/trigger",
    response_model=MessageResponse,
    dependencies=[Depends(require_sse_secret)],
)
async def trigger_subscription_event(payload: SubscriptionEventTrigger):
    """Server-to-server hook that pushes an activation event to a waiting customer."""
    if payload.customer_id is None or payload.subscription_id is None or not payload.status:
        raise HTTPException(status_code=400, detail="customer_id, subscription_id and status are required")
    delivered = hub.send_subscription_event(
        payload.customer_id, {"subscription_id": payload.subscription_id, "status": payload.status})
    if not delivered:
        raise HTTPException(status_code=404, detail="Customer not connected")
    logger.info(f"Subscription event delivered to customer {payload.customer_id}")
    return MessageResponse(message="Event sent")
