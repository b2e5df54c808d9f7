from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from smartlink.core.database import SessionLocal, atomic
from smartlink.core.settings import settings
from smartlink.models.campaign import Campaign
from smartlink.services import campaign_budget, ledger
from smartlink.services.ledger import as_utc, utcnow
from smartlink.services.notifications import CAMPAIGN_BUDGET_WARNING, notify_on_commit

logger = logging.getLogger(__name__)


def spent_percentage(campaign: Campaign) -> Decimal:
    budget = Decimal(campaign.budget or 0)
    if budget <= 0:
        return Decimal("0")
    return (Decimal(campaign.spent or 0) / budget) * 100


def low_budget_campaigns(db: Session, threshold_pct: Decimal | None = None) -> list[Campaign]:
    """Active campaigns past the warning threshold that have not been warned since their last allocation."""
    threshold = Decimal(threshold_pct if threshold_pct is not None else settings.budget_warning_threshold_pct)
    ratio = threshold / 100
    return (
        db.query(Campaign)
        .filter(Campaign.is_active.is_(True), Campaign.budget > 0)
        .filter(Campaign.budget_warning_sent_at.is_(None))
        .filter(Campaign.spent >= Campaign.budget * ratio)
        .order_by(Campaign.id.asc())
        .all()
    )


def _warn(db: Session, campaign: Campaign, now: datetime) -> bool:
    remaining = ledger.remaining_budget(campaign)
    if not campaign_budget.check_budget(campaign, campaign_budget.MIN_CHARGE):
        return False
    with atomic(db):
        rows = (
            db.query(Campaign)
            .filter(Campaign.id == campaign.id, Campaign.budget_warning_sent_at.is_(None))
            .update({Campaign.budget_warning_sent_at: now}, synchronize_session=False)
        )
        if int(rows or 0) != 1:
            return False
        notify_on_commit(
            db,
            campaign.user_id,
            CAMPAIGN_BUDGET_WARNING,
            {
                "campaign_id": campaign.id,
                "campaign_name": campaign.name,
                "budget_used": campaign.spent,
                "budget_total": campaign.budget,
                "remaining_budget": remaining,
                "percentage_used": spent_percentage(campaign).quantize(Decimal("0.01")),
            },
        )
    return True


def run_budget_monitor(db: Session, now: datetime | None = None) -> dict[str, Any]:
    now = as_utc(now) or utcnow()
    logger.info("budget_monitor.start")
    warned = 0
    for campaign in low_budget_campaigns(db):
        try:
            if _warn(db, campaign, now):
                warned += 1
        except Exception:
            logger.exception("budget_monitor.warn.error campaign_id=%s", campaign.id)

    deactivated = campaign_budget.deactivate_expired(db, now=now)
    logger.info("budget_monitor.done warned=%s deactivated=%s", warned, deactivated)
    return {"warned": warned, "deactivated": deactivated}


async def budget_monitor_loop(interval_s: int | None = None) -> None:
    interval = int(interval_s if interval_s is not None else settings.budget_monitor_interval_s)
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        db = SessionLocal()
        try:
            await asyncio.to_thread(run_budget_monitor, db)
        except Exception:
            logger.exception("budget_monitor.loop.error")
        finally:
            db.close()
