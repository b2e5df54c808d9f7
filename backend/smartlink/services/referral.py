from __future__ import annotations

import hashlib
import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from smartlink.core.database import atomic
from smartlink.core.settings import settings
from smartlink.models.referral_earning import ReferralEarning
from smartlink.models.transaction_log import TransactionLog
from smartlink.models.user import User
from smartlink.services import ledger

logger = logging.getLogger(__name__)

EARNING_TYPE_DEPOSIT = "deposit"
EARNING_TYPE_AD_SPEND = "ad_spend"

CENT = Decimal("0.01")


def calculate_and_distribute_earnings(db: Session, transaction: TransactionLog) -> dict[str, Any]:
    """Credit the referrer of ``transaction.user`` with a share of its amount.

    At most one earning exists per source transaction: a repeat call returns
    success with ``already_distributed`` set, and the unique constraint on
    ``source_transaction_id`` rejects a concurrent duplicate.
    """
    user = db.query(User).filter(User.id == transaction.user_id).first()
    if user is None or not user.referrer_id:
        return {"success": True, "message": "User has no referrer"}

    referrer = db.query(User).filter(User.id == user.referrer_id).first()
    if referrer is None:
        return {"success": True, "message": "Referrer not found"}

    existing = (
        db.query(ReferralEarning)
        .filter(ReferralEarning.source_transaction_id == transaction.id)
        .first()
    )
    if existing is not None:
        return {"success": True, "message": "Referral earnings already distributed", "already_distributed": True}

    reward = (Decimal(str(transaction.amount or 0)) * settings.referral_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    if reward <= 0:
        return {"success": True, "message": "Nothing to distribute", "amount": Decimal("0")}

    try:
        with atomic(db):
            if not ledger.add_balance(db, referrer, reward):
                raise RuntimeError("referrer credit failed")
            db.add(
                ReferralEarning(
                    user_id=referrer.id,
                    referred_user_id=user.id,
                    amount=reward,
                    source_transaction_id=transaction.id,
                    type=EARNING_TYPE_DEPOSIT if transaction.is_deposit else EARNING_TYPE_AD_SPEND,
                )
            )
            db.flush()
    except Exception:
        logger.exception(
            "referral.distribute.error transaction_id=%s referrer_id=%s amount=%s",
            transaction.id,
            user.referrer_id,
            reward,
        )
        return {"success": False, "error": "Referral earnings distribution failed"}

    logger.info("referral.distribute.ok transaction_id=%s referrer_id=%s amount=%s", transaction.id, referrer.id, reward)
    return {"success": True, "message": "Referral earnings distributed successfully", "amount": reward}


def generate_referral_code(user: User) -> str:
    digest = hashlib.md5(f"{user.id}{time.time()}".encode("utf-8")).hexdigest()
    return "REF" + digest[:8].upper()


def get_referral_stats(db: Session, user: User) -> dict[str, Any]:
    referred = int(db.query(func.count(User.id)).filter(User.referrer_id == user.id).scalar() or 0)
    total = (
        db.query(func.coalesce(func.sum(ReferralEarning.amount), 0))
        .filter(ReferralEarning.user_id == user.id)
        .scalar()
    )
    return {
        "referral_code": user.referral_code,
        "referred_users_count": referred,
        "total_earnings": Decimal(str(total or 0)),
    }
