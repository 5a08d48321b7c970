from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import require_admin_key
from ..models import Transaction
from ..schemas import (
    AutoReleaseResult,
    ModelProfile,
    RejectRequest,
    SubscriptionResponse,
    TransactionResponse,
)
from ..services.auth_service import AuthService
from ..services.booking_service import BookingService
from ..services.call_service import CallService
from ..services.subscription_service import SubscriptionService
from ..services.wallet_service import WalletService

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
    responses={403: {"description": "Admin access required"}},
)


@router.post("/models/{model_id}/approve", response_model=ModelProfile)
async def approve_model(model_id: int, db: AsyncSession = Depends(get_db)):
    return await AuthService.approve_model(db, model_id)


@router.get("/transactions", response_model=List[TransactionResponse])
async def pending_transactions(
    identifier: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Top-ups and withdrawals waiting for review, oldest first."""
    stmt = select(Transaction).where(Transaction.status == "pending")
    if identifier:
        stmt = stmt.where(Transaction.identifier == identifier)
    result = await db.execute(stmt.order_by(Transaction.created_at, Transaction.id).limit(limit))
    return result.scalars().all()


@router.post("/transactions/{transaction_id}/approve", response_model=TransactionResponse)
async def approve_transaction(transaction_id: int, db: AsyncSession = Depends(get_db)):
    return await WalletService.approve_transaction(db, transaction_id)


@router.post("/transactions/{transaction_id}/reject", response_model=TransactionResponse)
async def reject_transaction(
    transaction_id: int,
    payload: Optional[RejectRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    return await WalletService.reject_transaction(db, transaction_id, payload.reason if payload else None)


@router.post("/subscriptions/{subscription_id}/activate", response_model=SubscriptionResponse)
async def activate_subscription(subscription_id: int, db: AsyncSession = Depends(get_db)):
    """Activate a bank-transfer subscription and notify the customer's open activation stream."""
    return await SubscriptionService.activate_pending(db, subscription_id)


@router.post("/maintenance/auto-release", response_model=List[AutoReleaseResult])
async def run_auto_release(db: AsyncSession = Depends(get_db)):
    return await BookingService.process_auto_release(db)


@router.post("/maintenance/call-sweep")
async def run_call_sweep(db: AsyncSession = Depends(get_db)):
    """Miss unanswered calls and settle calls whose heartbeats stopped."""
    return await CallService.sweep_stale_calls(db)
