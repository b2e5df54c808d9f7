from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Callable, Sequence
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.orm import Session

from smartlink.core.database import atomic
from smartlink.core.settings import settings
from smartlink.models.ad_slot import AdSlot, ad_slot_campaign
from smartlink.models.analytics_event import AnalyticsEventType, RelatedType
from smartlink.models.campaign import Campaign
from smartlink.models.creative import TYPE_BANNER, Creative
from smartlink.models.site import Site
from smartlink.models.transaction_log import TransactionType
from smartlink.services import analytics, financial, ledger, transaction_log
from smartlink.services.ledger import LedgerConflict, as_utc, utcnow

logger = logging.getLogger(__name__)

ERR_SLOT_INACTIVE = "Ad slot is not active"
ERR_NO_CAMPAIGNS = "No active campaigns available"
ERR_NO_COMPATIBLE = "No campaigns with compatible ad formats available"
ERR_INSUFFICIENT_BUDGET = "Insufficient campaign budget"
ERR_FAILED = "Ad request failed"

SelectionStrategy = Callable[[Sequence[Campaign], random.Random], Campaign]


def select_uniform(candidates: Sequence[Campaign], rng: random.Random) -> Campaign:
    return rng.choice(list(candidates))


def select_weighted_remaining(candidates: Sequence[Campaign], rng: random.Random) -> Campaign:
    items = list(candidates)
    weights = [max(float(ledger.remaining_budget(c)), 0.0) for c in items]
    if sum(weights) <= 0:
        return rng.choice(items)
    return rng.choices(items, weights=weights, k=1)[0]


STRATEGIES: dict[str, SelectionStrategy] = {
    "uniform": select_uniform,
    "weighted_remaining": select_weighted_remaining,
}


def get_strategy(name: str | None = None) -> SelectionStrategy:
    key = (name or settings.ad_selection_strategy or "uniform").strip().lower()
    strategy = STRATEGIES.get(key)
    if strategy is None:
        logger.warning("ad_serving.strategy.unknown name=%s fallback=uniform", key)
        return select_uniform
    return strategy


def _as_int(value: Any) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _dimensions(raw: Any) -> tuple[int, int] | None:
    if not isinstance(raw, dict):
        return None
    nested = raw.get("dimensions")
    if isinstance(nested, dict):
        raw = nested
    width = _as_int(raw.get("width"))
    height = _as_int(raw.get("height"))
    if width is None or height is None:
        return None
    return (width, height)


def is_compatible(creative: Creative, ad_slot: AdSlot) -> bool:
    if (creative.type or "") != (ad_slot.type or ""):
        return False
    if ad_slot.dimensions and creative.type == TYPE_BANNER:
        slot_dims = _dimensions(ad_slot.dimensions)
        creative_dims = _dimensions(creative.content)
        if slot_dims is not None and creative_dims is not None:
            return slot_dims == creative_dims
    return True


def can_display_ads(db: Session, ad_slot: AdSlot) -> bool:
    if not ad_slot.is_active:
        return False
    site = db.query(Site).filter(Site.id == ad_slot.site_id).first()
    return bool(site and site.is_active)


def eligible_campaigns(db: Session, ad_slot: AdSlot, now: datetime | None = None) -> list[Campaign]:
    now = as_utc(now) or utcnow()
    return (
        db.query(Campaign)
        .join(ad_slot_campaign, ad_slot_campaign.c.campaign_id == Campaign.id)
        .filter(ad_slot_campaign.c.ad_slot_id == ad_slot.id)
        .filter(Campaign.is_active.is_(True))
        .filter(Campaign.start_date <= now)
        .filter(or_(Campaign.end_date.is_(None), Campaign.end_date >= now))
        .filter(Campaign.spent < Campaign.budget)
        .order_by(Campaign.id.asc())
        .all()
    )


def compatible_creatives(db: Session, campaign: Campaign, ad_slot: AdSlot) -> list[Creative]:
    creatives = (
        db.query(Creative)
        .filter(Creative.campaign_id == campaign.id, Creative.is_active.is_(True))
        .order_by(Creative.id.asc())
        .all()
    )
    return [c for c in creatives if is_compatible(c, ad_slot)]


def process_ad_request(
    db: Session,
    ad_slot: AdSlot,
    strategy: SelectionStrategy | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    if not can_display_ads(db, ad_slot):
        return {"success": False, "error": ERR_SLOT_INACTIVE}

    campaigns = eligible_campaigns(db, ad_slot, now=now)
    if not campaigns:
        return {"success": False, "error": ERR_NO_CAMPAIGNS}

    pool: dict[int, list[Creative]] = {}
    for campaign in campaigns:
        creatives = compatible_creatives(db, campaign, ad_slot)
        if creatives:
            pool[campaign.id] = creatives
    candidates = [c for c in campaigns if c.id in pool]
    if not candidates:
        return {"success": False, "error": ERR_NO_COMPATIBLE}

    rng = rng or random.Random()
    campaign = (strategy or get_strategy())(candidates, rng)
    creative = rng.choice(pool[campaign.id])
    price = ledger.to_decimal(ad_slot.price_per_impression) or ledger.ZERO

    try:
        with atomic(db):
            if price > 0:
                if not ledger.deduct_budget(db, campaign, price):
                    raise LedgerConflict("insufficient campaign budget")
                transaction_log.record(
                    db,
                    user_id=campaign.user_id,
                    amount=price,
                    type=TransactionType.IMPRESSION_CHARGE,
                    reference=f"IMP_{ad_slot.id}_{campaign.id}_{uuid4().hex[:12]}",
                    description=f"Impression on ad slot #{ad_slot.id}",
                )
            analytics.track(
                db,
                user_id=campaign.user_id,
                type=AnalyticsEventType.IMPRESSION,
                related_type=RelatedType.CAMPAIGN,
                related_id=campaign.id,
                cost=price,
            )
            if price > 0:
                financial.track_earning(db, ad_slot.site.user_id, ad_slot.site_id, price)
    except LedgerConflict:
        logger.info("ad_serving.charge.refused ad_slot_id=%s campaign_id=%s price=%s", ad_slot.id, campaign.id, price)
        return {"success": False, "error": ERR_INSUFFICIENT_BUDGET}
    except Exception:
        logger.exception("ad_serving.charge.error ad_slot_id=%s campaign_id=%s price=%s", ad_slot.id, campaign.id, price)
        return {"success": False, "error": ERR_FAILED}

    return {"success": True, "creative": creative, "campaign_id": campaign.id}


def associate_campaign(db: Session, ad_slot: AdSlot, campaign: Campaign) -> bool:
    exists = (
        db.query(ad_slot_campaign.c.id)
        .filter(ad_slot_campaign.c.ad_slot_id == ad_slot.id, ad_slot_campaign.c.campaign_id == campaign.id)
        .first()
    )
    if exists is not None:
        return True
    try:
        with atomic(db):
            db.execute(ad_slot_campaign.insert().values(ad_slot_id=ad_slot.id, campaign_id=campaign.id))
    except Exception:
        logger.exception("ad_serving.associate.error ad_slot_id=%s campaign_id=%s", ad_slot.id, campaign.id)
        return False
    return True


def dissociate_campaign(db: Session, ad_slot: AdSlot, campaign: Campaign) -> bool:
    try:
        with atomic(db):
            db.execute(
                ad_slot_campaign.delete().where(
                    ad_slot_campaign.c.ad_slot_id == ad_slot.id,
                    ad_slot_campaign.c.campaign_id == campaign.id,
                )
            )
    except Exception:
        logger.exception("ad_serving.dissociate.error ad_slot_id=%s campaign_id=%s", ad_slot.id, campaign.id)
        return False
    return True
