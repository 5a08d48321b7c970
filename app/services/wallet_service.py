"""
Wallet balances, the transaction ledger and escrow primitives.

Escrow helpers (hold/release/refund/deduct) only stage changes and flush; the
calling service commits them together with its own state transition.
"""
import logging
import math
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import (
    ConflictError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ValidationFailedError,
)
from ..models import Booking, ModelService, Service, Transaction, Wallet
from .audit_service import AuditService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

# Statuses a booking can be in while its money is still held for the model
PENDING_EARNING_STATUSES = ("confirmed", "in_progress", "awaiting_confirmation")
PENDING_EARNING_PAYMENT = ("held", "pending_release")
EARNING_IDENTIFIERS = ("booking_earning", "call_earning")


def split_commission(amount: int, commission_rate: float) -> tuple:
    """Return (commission, net) for an amount and a percent rate"""
    commission = math.floor(amount * (commission_rate or 0) / 100)
    return commission, amount - commission


async def _load_wallet(
    db: AsyncSession, customer_id: Optional[int] = None, model_id: Optional[int] = None, lock: bool = False
) -> Optional[Wallet]:
    stmt = select(Wallet)
    if customer_id is not None:
        stmt = stmt.where(Wallet.customer_id == customer_id)
    else:
        stmt = stmt.where(Wallet.model_id == model_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


class WalletService:
    @staticmethod
    async def create_wallet(
        db: AsyncSession, customer_id: Optional[int] = None, model_id: Optional[int] = None
    ) -> Wallet:
        if (customer_id is None) == (model_id is None):
            raise ValueError("A wallet belongs to exactly one customer or model")
        if await _load_wallet(db, customer_id, model_id) is not None:
            raise ConflictError("Wallet already exists")
        wallet = Wallet(
            customer_id=customer_id,
            model_id=model_id,
            total_balance=0,
            total_recharge=0,
            total_deposit=0,
            status="active",
        )
        db.add(wallet)
        await db.flush()
        return wallet

    @staticmethod
    async def get_wallet(
        db: AsyncSession, customer_id: Optional[int] = None, model_id: Optional[int] = None
    ) -> Wallet:
        wallet = await _load_wallet(db, customer_id, model_id)
        if wallet is None:
            raise NotFoundError("Wallet")
        return wallet

    # Escrow primitives

    @staticmethod
    async def hold(
        db: AsyncSession, customer_id: int, amount: int, identifier: str, reason: str
    ) -> Transaction:
        wallet = await _load_wallet(db, customer_id=customer_id, lock=True)
        if wallet is None or wallet.status != "active":
            raise NotFoundError("Wallet")
        if wallet.total_balance < amount:
            raise InsufficientBalanceError(amount, wallet.total_balance)

        hold_tx = Transaction(
            identifier=identifier,
            amount=-amount,
            status="held",
            customer_id=customer_id,
            reason=reason,
        )
        db.add(hold_tx)
        wallet.total_balance -= amount
        await db.flush()
        logger.info(f"Held {amount} from customer {customer_id} ({identifier})")
        return hold_tx

    @staticmethod
    async def release(
        db: AsyncSession,
        model_id: int,
        amount: int,
        hold_transaction_id: Optional[int],
        commission_rate: float,
        identifier: str,
        reason: str,
    ) -> Transaction:
        """Pay a held amount out to the model, minus platform commission"""
        commission, net = split_commission(amount, commission_rate)

        if hold_transaction_id is not None:
            hold_tx = await db.get(Transaction, hold_transaction_id)
            if hold_tx is not None:
                hold_tx.status = "released"

        wallet = await _load_wallet(db, model_id=model_id, lock=True)
        if wallet is None:
            wallet = await WalletService.create_wallet(db, model_id=model_id)

        earning = Transaction(
            identifier=identifier,
            amount=net,
            status="approved",
            commission=commission,
            model_id=model_id,
            reason=reason,
        )
        db.add(earning)
        wallet.total_balance += net
        wallet.total_deposit += net
        await db.flush()
        logger.info(f"Released {net} to model {model_id} (commission {commission}, {identifier})")
        return earning

    @staticmethod
    async def refund(
        db: AsyncSession,
        customer_id: int,
        amount: int,
        hold_transaction_id: Optional[int],
        identifier: str,
        reason: str,
    ) -> Transaction:
        if hold_transaction_id is not None:
            hold_tx = await db.get(Transaction, hold_transaction_id)
            if hold_tx is not None:
                hold_tx.status = "refunded"

        wallet = await _load_wallet(db, customer_id=customer_id, lock=True)
        if wallet is None:
            raise NotFoundError("Wallet")

        refund_tx = Transaction(
            identifier=identifier,
            amount=amount,
            status="approved",
            customer_id=customer_id,
            reason=reason,
        )
        db.add(refund_tx)
        wallet.total_balance += amount
        await db.flush()
        logger.info(f"Refunded {amount} to customer {customer_id} ({identifier})")
        return refund_tx

    @staticmethod
    async def adjust_hold(
        db: AsyncSession, customer_id: int, hold_transaction_id: int, delta: int, reason: str
    ) -> Transaction:
        """Grow (delta > 0) or shrink (delta < 0) an existing hold after a booking edit.

        The original hold row is left as written; the difference is its own
        ledger entry, a ``booking_hold`` debit or a ``booking_refund`` credit.
        """
        hold_tx = await db.get(Transaction, hold_transaction_id)
        if hold_tx is None or hold_tx.status != "held":
            raise InvalidStateError("Booking payment is no longer held")
        wallet = await _load_wallet(db, customer_id=customer_id, lock=True)
        if wallet is None:
            raise NotFoundError("Wallet")
        if delta > 0 and wallet.total_balance < delta:
            raise InsufficientBalanceError(delta, wallet.total_balance)

        difference = Transaction(
            identifier="booking_hold" if delta > 0 else "booking_refund",
            amount=-delta,
            status="approved",
            customer_id=customer_id,
            reason=reason,
        )
        db.add(difference)
        wallet.total_balance -= delta
        await db.flush()
        logger.info(f"Adjusted hold {hold_transaction_id} by {delta} for customer {customer_id}")
        return difference

    @staticmethod
    async def deduct(db: AsyncSession, customer_id: int, amount: int, reason: str) -> Transaction:
        """Immediate debit, used for subscription purchases"""
        wallet = await _load_wallet(db, customer_id=customer_id, lock=True)
        if wallet is None:
            raise NotFoundError("Wallet")
        if wallet.total_balance < amount:
            raise InsufficientBalanceError(amount, wallet.total_balance)

        debit = Transaction(
            identifier="subscription",
            amount=-amount,
            status="approved",
            customer_id=customer_id,
            reason=reason,
        )
        db.add(debit)
        wallet.total_balance -= amount
        wallet.total_deposit += amount
        await db.flush()
        return debit

    # Customer / model operations

    @staticmethod
    async def top_up(db: AsyncSession, customer_id: int, amount: int, payment_slip: Optional[str]) -> Transaction:
        """Record a recharge request; the balance moves only after admin approval"""
        if amount <= 0:
            raise ValidationFailedError("Amount must be greater than zero")
        await WalletService.get_wallet(db, customer_id=customer_id)
        tx = Transaction(
            identifier="recharge",
            amount=amount,
            status="pending",
            payment_slip=payment_slip,
            customer_id=customer_id,
            reason="Wallet top-up",
        )
        db.add(tx)
        await db.flush()
        AuditService.record(db, "wallet_top_up", customer_id=customer_id,
                            description=f"Top-up request of {amount}", payload={"transaction_id": tx.id})
        await db.commit()
        await db.refresh(tx)
        return tx

    @staticmethod
    async def withdraw(db: AsyncSession, model_id: int, amount: int, bank_account: str) -> Transaction:
        if amount <= 0:
            raise ValidationFailedError("Amount must be greater than zero")
        wallet = await WalletService.get_wallet(db, model_id=model_id)
        if wallet.total_balance < amount:
            raise InsufficientBalanceError(amount, wallet.total_balance)
        tx = Transaction(
            identifier="withdrawal",
            amount=amount,
            status="pending",
            model_id=model_id,
            reason=f"Withdrawal to bank account: {bank_account}",
        )
        db.add(tx)
        await db.flush()
        AuditService.record(db, "wallet_withdraw", model_id=model_id,
                            description=f"Withdrawal request of {amount}", payload={"transaction_id": tx.id})
        await db.commit()
        await db.refresh(tx)
        return tx

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        customer_id: Optional[int] = None,
        model_id: Optional[int] = None,
        identifier: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Transaction]:
        stmt = select(Transaction)
        if customer_id is not None:
            stmt = stmt.where(Transaction.customer_id == customer_id)
        else:
            stmt = stmt.where(Transaction.model_id == model_id)
        if identifier:
            stmt = stmt.where(Transaction.identifier == identifier)
        if status:
            stmt = stmt.where(Transaction.status == status)
        stmt = stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc()).offset(offset).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_transaction(
        db: AsyncSession, transaction_id: int, customer_id: Optional[int] = None, model_id: Optional[int] = None
    ) -> Transaction:
        tx = await db.get(Transaction, transaction_id)
        if tx is None:
            raise NotFoundError("Transaction")
        if customer_id is not None and tx.customer_id != customer_id:
            raise NotFoundError("Transaction")
        if model_id is not None and tx.model_id != model_id:
            raise NotFoundError("Transaction")
        return tx

    @staticmethod
    async def update_transaction(
        db: AsyncSession, transaction_id: int, customer_id: int,
        amount: Optional[int] = None, payment_slip: Optional[str] = None,
    ) -> Transaction:
        tx = await WalletService.get_transaction(db, transaction_id, customer_id=customer_id)
        if tx.status != "pending" or tx.identifier != "recharge":
            raise InvalidStateError("Only pending top-up requests can be edited")
        if amount is not None:
            tx.amount = amount
        if payment_slip is not None:
            tx.payment_slip = payment_slip
        await db.commit()
        await db.refresh(tx)
        return tx

    @staticmethod
    async def delete_transaction(
        db: AsyncSession, transaction_id: int, customer_id: Optional[int] = None, model_id: Optional[int] = None
    ) -> None:
        tx = await WalletService.get_transaction(db, transaction_id, customer_id=customer_id, model_id=model_id)
        if tx.status != "pending":
            raise InvalidStateError(f"Cannot delete a transaction that is {tx.status}")
        await db.delete(tx)
        await db.commit()

    @staticmethod
    async def model_wallet_summary(db: AsyncSession, model_id: int) -> dict:
        wallet = await WalletService.get_wallet(db, model_id=model_id)

        total_income = await db.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.model_id == model_id,
                Transaction.identifier.in_(EARNING_IDENTIFIERS),
                Transaction.status == "approved",
            )
        )

        result = await db.execute(
            select(Booking.price, Service.commission)
            .outerjoin(ModelService, Booking.model_service_id == ModelService.id)
            .outerjoin(Service, ModelService.service_id == Service.id)
            .where(
                Booking.model_id == model_id,
                Booking.status.in_(PENDING_EARNING_STATUSES),
                Booking.payment_status.in_(PENDING_EARNING_PAYMENT),
            )
        )
        pending_balance = 0
        for price, commission in result.all():
            pending_balance += round((price or 0) * (1 - (commission or 0) / 100))

        return {
            "total_income": int(total_income or 0),
            "total_available": wallet.total_balance,
            "pending_balance": pending_balance,
        }

    # Admin review

    @staticmethod
    async def approve_transaction(db: AsyncSession, transaction_id: int) -> Transaction:
        tx = await WalletService.get_transaction(db, transaction_id)
        if tx.status != "pending" or tx.identifier not in ("recharge", "withdrawal"):
            raise InvalidStateError("Only pending top-ups and withdrawals can be approved")

        if tx.identifier == "recharge":
            wallet = await _load_wallet(db, customer_id=tx.customer_id, lock=True)
            if wallet is None:
                raise NotFoundError("Wallet")
            wallet.total_balance += tx.amount
            wallet.total_recharge += tx.amount
            recipient = ("customer", tx.customer_id, "deposit_approved")
        else:
            wallet = await _load_wallet(db, model_id=tx.model_id, lock=True)
            if wallet is None:
                raise NotFoundError("Wallet")
            if wallet.total_balance < tx.amount:
                raise InsufficientBalanceError(tx.amount, wallet.total_balance)
            wallet.total_balance -= tx.amount
            recipient = ("model", tx.model_id, "withdraw_approved")

        tx.status = "approved"
        AuditService.record(db, f"{tx.identifier}_approved", customer_id=tx.customer_id,
                            model_id=tx.model_id, payload={"transaction_id": tx.id, "amount": tx.amount})
        await db.commit()
        await db.refresh(tx)

        role, user_id, kind = recipient
        await NotificationService.notify(db, role, user_id, kind, {"transaction_id": tx.id, "amount": tx.amount})
        return tx

    @staticmethod
    async def reject_transaction(db: AsyncSession, transaction_id: int, reason: Optional[str] = None) -> Transaction:
        tx = await WalletService.get_transaction(db, transaction_id)
        if tx.status != "pending" or tx.identifier not in ("recharge", "withdrawal"):
            raise InvalidStateError("Only pending top-ups and withdrawals can be rejected")
        tx.status = "rejected"
        tx.rejection_reason = reason
        AuditService.record(db, f"{tx.identifier}_rejected", customer_id=tx.customer_id,
                            model_id=tx.model_id, description=reason, payload={"transaction_id": tx.id})
        await db.commit()
        await db.refresh(tx)

        if tx.identifier == "recharge":
            await NotificationService.notify(db, "customer", tx.customer_id, "deposit_rejected",
                                             {"transaction_id": tx.id, "amount": tx.amount}, reason=reason or "")
        else:
            await NotificationService.notify(db, "model", tx.model_id, "withdraw_rejected",
                                             {"transaction_id": tx.id, "amount": tx.amount}, reason=reason or "")
        return tx
