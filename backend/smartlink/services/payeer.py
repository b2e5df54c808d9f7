"""Payeer merchant deposits: signed checkout form and webhook settlement."""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.orm import Session

from smartlink.core.database import atomic
from smartlink.core.settings import settings
from smartlink.models.transaction_log import TransactionLog, TransactionStatus, TransactionType
from smartlink.models.user import User
from smartlink.services import ledger, referral, transaction_log
from smartlink.services.notifications import BALANCE_TOP_UP, notify_on_commit
from smartlink.services.serialization import money_str

logger = logging.getLogger(__name__)

ORDER_PREFIX = "DEP"

ERR_INVALID_SIGNATURE = "Invalid signature"
ERR_ALREADY_PROCESSED = "Transaction already processed"
ERR_INVALID_AMOUNT = "Invalid amount"
ERR_INVALID_CURRENCY = "Invalid currency"
ERR_INVALID_ORDER = "Invalid order ID"
ERR_USER_NOT_FOUND = "User not found"
ERR_PROCESSING = "Processing error"


def generate_signature(data: Mapping[str, Any], secret: str) -> str:
    values = [str(data[k]) for k in sorted(data.keys())]
    values.append(secret)
    return hashlib.sha256(":".join(values).encode("utf-8")).hexdigest()


def verify_webhook(data: Mapping[str, Any], secret: str | None = None) -> bool:
    if "m_operation_id" not in data or "m_sign" not in data:
        return False
    secret = secret if secret is not None else (settings.payeer_secret_key or "")
    if not secret:
        return False
    signature = str(data.get("m_sign") or "")
    payload = {k: v for k, v in data.items() if k != "m_sign"}
    expected = generate_signature(payload, secret)
    return hmac.compare_digest(expected, signature)


def parse_order_user_id(order_id: str) -> int | None:
    parts = str(order_id or "").split("_")
    if len(parts) < 3 or not parts[1].isdigit():
        return None
    return int(parts[1])


def initiate_deposit(
    db: Session,
    user: User,
    amount: Any,
    description: str = "SmartLink Deposit",
    meta: dict[str, Any] | None = None,
) -> dict[str, Any]:
    value = ledger.to_decimal(amount)
    if value is None or value <= 0:
        return {"success": False, "error": ERR_INVALID_AMOUNT}
    if not settings.payeer_merchant_id or not settings.payeer_secret_key:
        return {"success": False, "error": "Payeer is not configured"}

    order_id = transaction_log.new_reference(ORDER_PREFIX, user.id)
    data = {
        "m_shop": settings.payeer_merchant_id,
        "m_orderid": order_id,
        "m_amount": money_str(value),
        "m_curr": settings.settlement_currency,
        "m_desc": base64.b64encode(description.encode("utf-8")).decode("ascii"),
    }
    data["m_sign"] = generate_signature(data, settings.payeer_secret_key)

    with atomic(db):
        transaction_log.record(
            db,
            user_id=user.id,
            amount=value,
            type=TransactionType.DEPOSIT,
            reference=order_id,
            status=TransactionStatus.PENDING,
            description=description,
            meta=meta,
        )

    return {"success": True, "order_id": order_id, "data": data, "redirect_url": settings.payeer_base_url}


def _mark_failed(db: Session, order_id: str, reason: str) -> None:
    try:
        with atomic(db):
            transaction_log.reconcile(
                db,
                reference=order_id,
                type=TransactionType.DEPOSIT,
                new_status=TransactionStatus.FAILED,
                description=f"Payeer deposit failed: {reason}",
            )
    except Exception:
        logger.exception("payeer.deposit.mark_failed.error order_id=%s", order_id)


def process_deposit(
    db: Session,
    data: Mapping[str, Any],
    meta: dict[str, Any] | None = None,
    secret: str | None = None,
) -> dict[str, Any]:
    order_id = str(data.get("m_orderid") or "")
    logger.info("payeer.webhook.received order_id=%s operation_id=%s", order_id, data.get("m_operation_id"))

    if not verify_webhook(data, secret):
        logger.warning("payeer.webhook.bad_signature order_id=%s", order_id)
        return {"success": False, "error": ERR_INVALID_SIGNATURE}

    existing = transaction_log.find_by_reference(db, order_id, TransactionType.DEPOSIT) if order_id else None
    if existing is not None:
        if existing.status == TransactionStatus.COMPLETED.value:
            logger.info("payeer.webhook.duplicate order_id=%s", order_id)
            return {"success": False, "duplicate": True, "error": ERR_ALREADY_PROCESSED}
        if existing.status == TransactionStatus.FAILED.value:
            logger.info("payeer.webhook.retry_failed order_id=%s", order_id)

    amount = ledger.to_decimal(data.get("m_amount"))
    if amount is None or amount <= 0:
        logger.warning("payeer.webhook.bad_amount order_id=%s amount=%s", order_id, data.get("m_amount"))
        return {"success": False, "error": ERR_INVALID_AMOUNT}

    currency = str(data.get("m_curr") or "").upper()
    if currency != settings.settlement_currency:
        logger.warning("payeer.webhook.bad_currency order_id=%s currency=%s", order_id, currency)
        return {"success": False, "error": ERR_INVALID_CURRENCY}

    user_id = parse_order_user_id(order_id)
    if user_id is None:
        logger.error("payeer.webhook.bad_order_id order_id=%s", order_id)
        return {"success": False, "error": ERR_INVALID_ORDER}

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.error("payeer.webhook.user_not_found order_id=%s user_id=%s", order_id, user_id)
        return {"success": False, "error": ERR_USER_NOT_FOUND}

    description = "Payeer deposit completed via webhook"
    try:
        with atomic(db):
            # Deliveries for one user serialize on the user row
            db.query(User).filter(User.id == user.id).with_for_update().first()
            current = transaction_log.lock_by_reference(db, order_id, TransactionType.DEPOSIT)
            entry: TransactionLog | None = None
            if current is not None:
                if current.status == TransactionStatus.COMPLETED.value:
                    raise ledger.LedgerConflict(ERR_ALREADY_PROCESSED)
                entry = transaction_log.reconcile(
                    db,
                    reference=order_id,
                    type=TransactionType.DEPOSIT,
                    new_status=TransactionStatus.COMPLETED,
                    description=description,
                    meta=meta,
                )
                if entry is None:
                    raise ledger.LedgerConflict(ERR_ALREADY_PROCESSED)
                if Decimal(str(entry.amount)) != amount:
                    logger.warning(
                        "payeer.webhook.amount_changed order_id=%s requested=%s paid=%s",
                        order_id,
                        entry.amount,
                        amount,
                    )
                    entry.amount = amount
                    db.flush()
            if not ledger.add_balance(db, user, amount):
                raise RuntimeError("balance credit failed")
            if entry is None:
                entry = transaction_log.record(
                    db,
                    user_id=user.id,
                    amount=amount,
                    type=TransactionType.DEPOSIT,
                    reference=order_id,
                    status=TransactionStatus.COMPLETED,
                    description=description,
                    meta=meta,
                )
            notify_on_commit(db, user.id, BALANCE_TOP_UP, {"amount": amount, "balance": user.balance})
    except ledger.LedgerConflict:
        logger.info("payeer.webhook.duplicate order_id=%s", order_id)
        return {"success": False, "duplicate": True, "error": ERR_ALREADY_PROCESSED}
    except Exception as exc:
        logger.exception("payeer.deposit.error order_id=%s user_id=%s amount=%s", order_id, user_id, amount)
        if existing is not None:
            _mark_failed(db, order_id, type(exc).__name__)
        return {"success": False, "error": ERR_PROCESSING}

    logger.info("payeer.deposit.ok order_id=%s user_id=%s amount=%s", order_id, user.id, amount)
    referral.calculate_and_distribute_earnings(db, entry)
    return {
        "success": True,
        "message": "Deposit processed successfully",
        "user_id": user.id,
        "amount": amount,
    }
