from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from smartlink.models.ad_slot import AdSlot
from smartlink.models.analytics_event import AnalyticsEvent, AnalyticsEventType, RelatedType
from smartlink.models.campaign import Campaign
from smartlink.models.site import Site
from smartlink.models.withdrawal import Withdrawal
from smartlink.services.ledger import as_utc, utcnow


_RELATED_MODELS: dict[RelatedType, Any] = {
    RelatedType.CAMPAIGN: Campaign,
    RelatedType.SITE: Site,
    RelatedType.AD_SLOT: AdSlot,
    RelatedType.WITHDRAWAL: Withdrawal,
}

PERIODS = ("today", "week", "month", "year")


def track(
    db: Session,
    *,
    user_id: int,
    type: AnalyticsEventType,
    related_type: RelatedType,
    related_id: int,
    cost: Any = None,
) -> AnalyticsEvent:
    event = AnalyticsEvent(
        user_id=int(user_id),
        type=type.value,
        related_type=related_type.value,
        related_id=int(related_id),
        cost=cost,
    )
    db.add(event)
    db.flush()
    return event


def resolve_related(db: Session, event: AnalyticsEvent) -> Any | None:
    try:
        related_type = RelatedType(event.related_type)
    except ValueError:
        return None
    model = _RELATED_MODELS[related_type]
    return db.query(model).filter(model.id == event.related_id).first()


def period_start(period: str, now: datetime | None = None) -> datetime:
    now = as_utc(now) or utcnow()
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return day
    if period == "week":
        return day - timedelta(days=day.weekday())
    if period == "year":
        return day.replace(month=1, day=1)
    return day.replace(day=1)


def dashboard_stats(db: Session, user_id: int, period: str = "month", now: datetime | None = None) -> dict[str, Any]:
    now = as_utc(now) or utcnow()
    start = period_start(period, now)
    rows = (
        db.query(
            AnalyticsEvent.type,
            func.count(AnalyticsEvent.id),
            func.coalesce(func.sum(AnalyticsEvent.cost), 0),
        )
        .filter(AnalyticsEvent.user_id == user_id)
        .filter(AnalyticsEvent.created_at >= start, AnalyticsEvent.created_at <= now)
        .group_by(AnalyticsEvent.type)
        .all()
    )
    by_type = {t: (int(c or 0), Decimal(str(s or 0))) for t, c, s in rows}
    impressions = by_type.get(AnalyticsEventType.IMPRESSION.value, (0, Decimal("0")))
    clicks = by_type.get(AnalyticsEventType.CLICK.value, (0, Decimal("0")))
    spend = by_type.get(AnalyticsEventType.SPEND.value, (0, Decimal("0")))
    earnings = by_type.get(AnalyticsEventType.EARNING.value, (0, Decimal("0")))
    ctr = (clicks[0] / impressions[0] * 100.0) if impressions[0] > 0 else 0.0
    return {
        "revenue": earnings[1],
        "spend": spend[1],
        "impressions": impressions[0],
        "clicks": clicks[0],
        "ctr": round(ctr, 2),
    }


def related_label(related: Any) -> str | None:
    if related is None:
        return None
    name = getattr(related, "name", None)
    if name:
        return str(name)
    return f"{type(related).__name__} #{related.id}"


def recent_events(db: Session, user_id: int, limit: int = 50) -> list[dict[str, Any]]:
    events = (
        db.query(AnalyticsEvent)
        .filter(AnalyticsEvent.user_id == user_id)
        .order_by(AnalyticsEvent.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": event.id,
            "type": event.type,
            "related_type": event.related_type,
            "related_id": event.related_id,
            "related_name": related_label(resolve_related(db, event)),
            "cost": event.cost,
            "created_at": event.created_at,
        }
        for event in events
    ]
