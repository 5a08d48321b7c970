from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Customer, Model
from ..schemas import (
    ModelWalletSummary,
    TopUpRequest,
    TransactionResponse,
    TransactionUpdate,
    WalletResponse,
    WithdrawRequest,
)
from ..services.jwt_service import JWTService, Principal, get_current_customer, get_current_model
from ..services.wallet_service import WalletService

router = APIRouter(prefix="/wallet", tags=["wallet"])


def _owner_kwargs(principal: Principal) -> dict:
    if principal.role == "customer":
        return {"customer_id": principal.id}
    return {"model_id": principal.id}


@router.get("", response_model=WalletResponse)
async def get_my_wallet(
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await WalletService.get_wallet(db, **_owner_kwargs(principal))


@router.post("/top-up", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def request_top_up(
    payload: TopUpRequest,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Submit a top-up request with a payment slip.

    The balance is credited only once an administrator approves the request.
    """
    return await WalletService.top_up(db, customer.id, payload.amount, payload.payment_slip)


@router.post("/withdraw", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    payload: WithdrawRequest,
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    """Request a payout of earned balance to a bank account."""
    return await WalletService.withdraw(db, model.id, payload.amount, payload.bank_account)


@router.get("/summary", response_model=ModelWalletSummary)
async def wallet_summary(
    model: Model = Depends(get_current_model),
    db: AsyncSession = Depends(get_db),
):
    return await WalletService.model_wallet_summary(db, model.id)


@router.get("/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    identifier: Optional[str] = Query(None, description="recharge, withdrawal, booking_hold, ..."),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await WalletService.list_transactions(
        db, identifier=identifier, status=status_filter, limit=limit, offset=offset,
        **_owner_kwargs(principal),
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await WalletService.get_transaction(db, transaction_id, **_owner_kwargs(principal))


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    customer: Customer = Depends(get_current_customer),
    db: AsyncSession = Depends(get_db),
):
    """Edit a top-up request that has not been reviewed yet."""
    return await WalletService.update_transaction(
        db, transaction_id, customer.id, amount=payload.amount, payment_slip=payload.payment_slip
    )


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: int,
    principal: Principal = Depends(JWTService.get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await WalletService.delete_transaction(db, transaction_id, **_owner_kwargs(principal))
