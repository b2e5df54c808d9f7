from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from smartlink.core.database import atomic
from smartlink.models.analytics_event import AnalyticsEventType, RelatedType
from smartlink.models.transaction_log import TransactionStatus, TransactionType
from smartlink.models.user import User
from smartlink.models.withdrawal import Withdrawal, WithdrawalStatus
from smartlink.services import analytics, ledger, referral, transaction_log
from smartlink.services.ledger import LedgerConflict, utcnow
from smartlink.services.notifications import BALANCE_TOP_UP, WITHDRAWAL_APPROVED, notify_on_commit

logger = logging.getLogger(__name__)

ERR_INVALID_AMOUNT = "Invalid amount"
ERR_INSUFFICIENT_FUNDS = "Insufficient funds"
ERR_NOT_PENDING = "Withdrawal is not pending"
ERR_NOT_APPROVED = "Withdrawal is not approved"


def _positive_amount(amount: Any) -> Decimal | None:
    value = ledger.to_decimal(amount)
    if value is None or value <= 0:
        return None
    return value


def validate_withdrawal_amount(user: User, amount: Any) -> bool:
    value = _positive_amount(amount)
    if value is None:
        return False
    return value <= get_available_balance_for_withdrawal(user)


def get_available_balance_for_withdrawal(user: User) -> Decimal:
    return ledger.available_balance(user)


def _lock_withdrawal(db: Session, withdrawal: Withdrawal) -> Withdrawal:
    locked = db.query(Withdrawal).filter(Withdrawal.id == withdrawal.id).with_for_update().first()
    if locked is None:
        raise LedgerConflict("withdrawal not found")
    db.refresh(locked)
    return locked


def _owner(db: Session, withdrawal: Withdrawal) -> User:
    user = db.query(User).filter(User.id == withdrawal.user_id).first()
    if user is None:
        raise LedgerConflict("withdrawal owner not found")
    return user


def create_withdrawal(db: Session, user: User, amount: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    value = _positive_amount(amount)
    if value is None:
        return {"success": False, "error": ERR_INVALID_AMOUNT}
    if not validate_withdrawal_amount(user, value):
        return {"success": False, "error": ERR_INSUFFICIENT_FUNDS}

    try:
        with atomic(db):
            if not ledger.freeze_balance(db, user, value):
                raise LedgerConflict(ERR_INSUFFICIENT_FUNDS)
            withdrawal = Withdrawal(
                user_id=user.id,
                amount=value,
                status=WithdrawalStatus.PENDING,
                transaction_id=transaction_log.new_reference("WTH", user.id),
            )
            db.add(withdrawal)
            db.flush()
            transaction_log.record(
                db,
                user_id=user.id,
                amount=value,
                type=TransactionType.WITHDRAWAL,
                reference=withdrawal.transaction_id,
                status=TransactionStatus.PENDING,
                description="Withdrawal request created",
                meta=meta,
            )
    except LedgerConflict:
        logger.info("financial.withdrawal.create.refused user_id=%s amount=%s", user.id, value)
        return {"success": False, "error": ERR_INSUFFICIENT_FUNDS}
    except Exception:
        logger.exception("financial.withdrawal.create.error user_id=%s amount=%s", user.id, value)
        return {"success": False, "error": "Withdrawal creation failed"}

    db.refresh(withdrawal)
    logger.info("financial.withdrawal.created withdrawal_id=%s user_id=%s amount=%s", withdrawal.id, user.id, value)
    return {"success": True, "withdrawal": withdrawal}


def approve_withdrawal(db: Session, withdrawal: Withdrawal, notes: str | None = None) -> dict[str, Any]:
    if withdrawal.status != WithdrawalStatus.PENDING:
        return {"success": False, "error": ERR_NOT_PENDING}

    try:
        with atomic(db):
            locked = _lock_withdrawal(db, withdrawal)
            if locked.status != WithdrawalStatus.PENDING:
                raise LedgerConflict(ERR_NOT_PENDING)
            locked.status = WithdrawalStatus.APPROVED
            locked.processed_at = utcnow()
            locked.notes = notes
            transaction_log.record(
                db,
                user_id=locked.user_id,
                amount=locked.amount,
                type=TransactionType.WITHDRAWAL,
                reference=locked.transaction_id,
                status=TransactionStatus.APPROVED,
                description="Withdrawal approved",
            )
            notify_on_commit(
                db,
                locked.user_id,
                WITHDRAWAL_APPROVED,
                {"withdrawal_id": locked.id, "amount": locked.amount, "transaction_id": locked.transaction_id},
            )
    except LedgerConflict:
        return {"success": False, "error": ERR_NOT_PENDING}
    except Exception:
        logger.exception("financial.withdrawal.approve.error withdrawal_id=%s", withdrawal.id)
        return {"success": False, "error": "Withdrawal approval failed"}

    db.refresh(withdrawal)
    logger.info("financial.withdrawal.approved withdrawal_id=%s", withdrawal.id)
    return {"success": True, "message": "Withdrawal approved successfully"}


def reject_withdrawal(db: Session, withdrawal: Withdrawal, notes: str | None = None) -> dict[str, Any]:
    if withdrawal.status != WithdrawalStatus.PENDING:
        return {"success": False, "error": ERR_NOT_PENDING}

    try:
        with atomic(db):
            locked = _lock_withdrawal(db, withdrawal)
            if locked.status != WithdrawalStatus.PENDING:
                raise LedgerConflict(ERR_NOT_PENDING)
            user = _owner(db, locked)
            if not ledger.unfreeze_balance(db, user, locked.amount):
                raise RuntimeError("frozen balance does not cover the withdrawal")
            locked.status = WithdrawalStatus.REJECTED
            locked.processed_at = utcnow()
            locked.notes = notes
            transaction_log.record(
                db,
                user_id=locked.user_id,
                amount=locked.amount,
                type=TransactionType.WITHDRAWAL,
                reference=locked.transaction_id,
                status=TransactionStatus.REJECTED,
                description="Withdrawal rejected, funds returned",
            )
    except LedgerConflict:
        return {"success": False, "error": ERR_NOT_PENDING}
    except Exception:
        logger.exception("financial.withdrawal.reject.error withdrawal_id=%s", withdrawal.id)
        return {"success": False, "error": "Withdrawal rejection failed"}

    db.refresh(withdrawal)
    logger.info("financial.withdrawal.rejected withdrawal_id=%s", withdrawal.id)
    return {"success": True, "message": "Withdrawal rejected successfully"}


def process_withdrawal(db: Session, withdrawal: Withdrawal, notes: str | None = None) -> dict[str, Any]:
    if withdrawal.status != WithdrawalStatus.APPROVED:
        return {"success": False, "error": ERR_NOT_APPROVED}

    try:
        with atomic(db):
            locked = _lock_withdrawal(db, withdrawal)
            if locked.status != WithdrawalStatus.APPROVED:
                raise LedgerConflict(ERR_NOT_APPROVED)
            user = _owner(db, locked)
            if not ledger.consume_frozen_balance(db, user, locked.amount):
                raise RuntimeError("frozen balance does not cover the withdrawal")
            locked.status = WithdrawalStatus.PROCESSED
            locked.processed_at = utcnow()
            locked.notes = notes
            transaction_log.record(
                db,
                user_id=locked.user_id,
                amount=locked.amount,
                type=TransactionType.WITHDRAWAL,
                reference=locked.transaction_id,
                status=TransactionStatus.PROCESSED,
                description="Withdrawal processed",
            )
            track_spending(db, locked.user_id, locked.id, locked.amount)
    except LedgerConflict:
        return {"success": False, "error": ERR_NOT_APPROVED}
    except Exception:
        logger.exception("financial.withdrawal.process.error withdrawal_id=%s", withdrawal.id)
        return {"success": False, "error": "Withdrawal processing failed"}

    db.refresh(withdrawal)
    logger.info("financial.withdrawal.processed withdrawal_id=%s", withdrawal.id)
    return {"success": True, "message": "Withdrawal processed successfully"}


def deposit(db: Session, user: User, amount: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Credit a manual deposit and log it as a completed ``deposit`` row."""
    value = _positive_amount(amount)
    if value is None:
        return {"success": False, "error": ERR_INVALID_AMOUNT}

    try:
        with atomic(db):
            if not ledger.add_balance(db, user, value):
                raise RuntimeError("balance credit failed")
            entry = transaction_log.record(
                db,
                user_id=user.id,
                amount=value,
                type=TransactionType.DEPOSIT,
                reference=transaction_log.new_reference("DEP", user.id),
                status=TransactionStatus.COMPLETED,
                description="Manual deposit",
                meta=meta,
            )
            notify_on_commit(db, user.id, BALANCE_TOP_UP, {"amount": value, "balance": user.balance})
    except Exception:
        logger.exception("financial.deposit.error user_id=%s amount=%s", user.id, value)
        return {"success": False, "error": "Deposit failed"}

    db.refresh(user)
    referral.calculate_and_distribute_earnings(db, entry)
    return {"success": True, "transaction": entry, "balance": user.balance, "amount": value}


def track_spending(db: Session, user_id: int, withdrawal_id: int, amount: Any) -> None:
    analytics.track(
        db,
        user_id=user_id,
        type=AnalyticsEventType.SPEND,
        related_type=RelatedType.WITHDRAWAL,
        related_id=withdrawal_id,
        cost=amount,
    )


def track_earning(db: Session, user_id: int, site_id: int, amount: Any) -> None:
    analytics.track(
        db,
        user_id=user_id,
        type=AnalyticsEventType.EARNING,
        related_type=RelatedType.SITE,
        related_id=site_id,
        cost=amount,
    )
