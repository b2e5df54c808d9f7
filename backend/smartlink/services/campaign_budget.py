from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from smartlink.core.database import atomic
from smartlink.models.campaign import Campaign
from smartlink.models.transaction_log import TransactionType
from smartlink.models.user import User
from smartlink.services import ledger, transaction_log
from smartlink.services.ledger import LedgerConflict, as_utc, utcnow
from smartlink.services.notifications import CAMPAIGN_DEACTIVATED, notify_on_commit

logger = logging.getLogger(__name__)

MIN_CHARGE = Decimal("0.01")


def _owner(db: Session, campaign: Campaign) -> User:
    owner = db.query(User).filter(User.id == campaign.user_id).with_for_update().first()
    if owner is None:
        raise LedgerConflict("campaign owner not found")
    return owner


def allocate_budget(db: Session, campaign: Campaign, amount: Any) -> bool:
    value = ledger.to_decimal(amount)
    if value is None or value <= 0:
        return False
    try:
        with atomic(db):
            owner = _owner(db, campaign)
            if not ledger.has_balance(owner, value):
                raise LedgerConflict("insufficient balance")
            if not ledger.deduct_balance(db, owner, value):
                raise LedgerConflict("balance changed concurrently")
            if not ledger.add_budget(db, campaign, value):
                raise LedgerConflict("budget update failed")
            campaign.budget_warning_sent_at = None
            transaction_log.record(
                db,
                user_id=owner.id,
                amount=value,
                type=TransactionType.BUDGET_ALLOCATION,
                reference=f"CMP_{campaign.id}",
                description=f"Budget allocated to campaign #{campaign.id}",
            )
    except LedgerConflict as exc:
        logger.info("campaign_budget.allocate.refused campaign_id=%s amount=%s reason=%s", campaign.id, value, exc)
        return False
    except Exception:
        logger.exception("campaign_budget.allocate.error campaign_id=%s amount=%s", campaign.id, value)
        return False
    logger.info("campaign_budget.allocate.ok campaign_id=%s amount=%s", campaign.id, value)
    return True


def _release_in_unit(db: Session, campaign: Campaign) -> None:
    released = ledger.settle_budget(db, campaign)
    if released is None:
        raise LedgerConflict("campaign changed concurrently")
    if released <= 0:
        return
    owner = _owner(db, campaign)
    if not ledger.add_balance(db, owner, released):
        raise LedgerConflict("balance credit failed")
    transaction_log.record(
        db,
        user_id=owner.id,
        amount=released,
        type=TransactionType.BUDGET_RETURN,
        reference=f"CMP_{campaign.id}",
        description=f"Unused budget returned from campaign #{campaign.id}",
    )


def release_budget(db: Session, campaign: Campaign) -> bool:
    """Return ``budget - spent`` to the owner; a no-op when nothing is unused."""
    try:
        with atomic(db):
            _release_in_unit(db, campaign)
    except LedgerConflict as exc:
        logger.info("campaign_budget.release.refused campaign_id=%s reason=%s", campaign.id, exc)
        return False
    except Exception:
        logger.exception("campaign_budget.release.error campaign_id=%s", campaign.id)
        return False
    return True


def check_budget(campaign: Campaign, amount: Any = 0) -> bool:
    return ledger.has_budget(campaign, amount)


def can_activate(campaign: Campaign, now: datetime | None = None) -> bool:
    return ledger.is_running(campaign, now) and ledger.remaining_budget(campaign) > 0


def activate_campaign(db: Session, campaign: Campaign, now: datetime | None = None) -> bool:
    if not can_activate(campaign, now):
        return False
    try:
        with atomic(db):
            campaign.is_active = True
    except Exception:
        logger.exception("campaign_budget.activate.error campaign_id=%s", campaign.id)
        return False
    return True


def _deactivate_in_unit(db: Session, campaign: Campaign) -> None:
    (
        db.query(Campaign)
        .filter(Campaign.id == campaign.id)
        .update({Campaign.is_active: False}, synchronize_session=False)
    )
    _release_in_unit(db, campaign)


def deactivate_campaign(db: Session, campaign: Campaign) -> bool:
    try:
        with atomic(db):
            _deactivate_in_unit(db, campaign)
    except LedgerConflict as exc:
        logger.info("campaign_budget.deactivate.refused campaign_id=%s reason=%s", campaign.id, exc)
        return False
    except Exception:
        logger.exception("campaign_budget.deactivate.error campaign_id=%s", campaign.id)
        return False
    return True


def delete_campaign(db: Session, campaign: Campaign) -> bool:
    try:
        with atomic(db):
            _release_in_unit(db, campaign)
            db.delete(campaign)
    except LedgerConflict as exc:
        logger.info("campaign_budget.delete.refused campaign_id=%s reason=%s", campaign.id, exc)
        return False
    except Exception:
        logger.exception("campaign_budget.delete.error campaign_id=%s", campaign.id)
        return False
    return True


def deactivate_expired(db: Session, now: datetime | None = None) -> int:
    """Deactivate active campaigns that are past their end date or out of budget.

    Each campaign is handled in its own unit; a failing row is logged and
    skipped. Returns how many campaigns were deactivated.
    """
    now = as_utc(now) or utcnow()
    ids = [
        cid
        for (cid,) in db.query(Campaign.id)
        .filter(Campaign.is_active.is_(True))
        .filter(or_(and_(Campaign.end_date.isnot(None), Campaign.end_date < now), Campaign.spent >= Campaign.budget))
        .order_by(Campaign.id.asc())
        .all()
    ]
    count = 0
    for cid in ids:
        campaign = db.query(Campaign).filter(Campaign.id == cid).first()
        if campaign is None:
            continue
        if ledger.is_running(campaign, now) and check_budget(campaign, MIN_CHARGE):
            logger.info("campaign_budget.deactivate_expired.still_running campaign_id=%s", cid)
            continue
        try:
            with atomic(db):
                _deactivate_in_unit(db, campaign)
                notify_on_commit(
                    db,
                    campaign.user_id,
                    CAMPAIGN_DEACTIVATED,
                    {"campaign_id": campaign.id, "campaign_name": campaign.name, "spent": campaign.spent},
                )
        except LedgerConflict as exc:
            logger.warning("campaign_budget.deactivate_expired.skipped campaign_id=%s reason=%s", cid, exc)
            continue
        except Exception:
            logger.exception("campaign_budget.deactivate_expired.error campaign_id=%s", cid)
            continue
        count += 1
    logger.info("campaign_budget.deactivate_expired.done count=%s candidates=%s", count, len(ids))
    return count
