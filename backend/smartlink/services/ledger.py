"""Guarded balance and budget mutators.

These are the only functions that write ``users.balance``,
``users.frozen_balance``, ``campaigns.budget`` and ``campaigns.spent``. Each
mutation is a single conditional UPDATE so that two concurrent writers cannot
both pass the guard; the ORM instance passed in is refreshed afterwards.
Callers own the transaction (see ``smartlink.core.database.atomic``).
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from smartlink.models.campaign import Campaign
from smartlink.models.user import User


ZERO = Decimal("0")


class LedgerConflict(Exception):
    """Aborts the current unit of work after a guarded mutator refused."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _positive(amount: Any) -> Decimal | None:
    value = to_decimal(amount)
    if value is None or value <= ZERO:
        return None
    return value


def has_balance(user: User, amount: Any) -> bool:
    value = to_decimal(amount)
    if value is None:
        return False
    return Decimal(user.balance or 0) >= value


def available_balance(user: User) -> Decimal:
    return Decimal(user.balance or 0)


def remaining_budget(campaign: Campaign) -> Decimal:
    return Decimal(campaign.budget or 0) - Decimal(campaign.spent or 0)


def has_budget(campaign: Campaign, amount: Any = 0) -> bool:
    value = to_decimal(amount)
    if value is None:
        return False
    return remaining_budget(campaign) >= value


def is_running(campaign: Campaign, now: datetime | None = None) -> bool:
    now = as_utc(now) or utcnow()
    start = as_utc(campaign.start_date)
    end = as_utc(campaign.end_date)
    if start is not None and start > now:
        return False
    return end is None or end >= now


def _apply(db: Session, instance: Any, query: Any, values: dict) -> bool:
    rows = query.update(values, synchronize_session=False)
    db.refresh(instance)
    return int(rows or 0) == 1


def deduct_balance(db: Session, user: User, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(User).filter(User.id == user.id, User.balance >= value)
    return _apply(db, user, q, {User.balance: User.balance - value})


def add_balance(db: Session, user: User, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(User).filter(User.id == user.id)
    return _apply(db, user, q, {User.balance: User.balance + value})


def freeze_balance(db: Session, user: User, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(User).filter(User.id == user.id, User.balance >= value)
    return _apply(
        db,
        user,
        q,
        {User.balance: User.balance - value, User.frozen_balance: User.frozen_balance + value},
    )


def unfreeze_balance(db: Session, user: User, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(User).filter(User.id == user.id, User.frozen_balance >= value)
    return _apply(
        db,
        user,
        q,
        {User.frozen_balance: User.frozen_balance - value, User.balance: User.balance + value},
    )


def consume_frozen_balance(db: Session, user: User, amount: Any) -> bool:
    """Remove frozen funds from the system without crediting the balance."""
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(User).filter(User.id == user.id, User.frozen_balance >= value)
    return _apply(db, user, q, {User.frozen_balance: User.frozen_balance - value})


def add_budget(db: Session, campaign: Campaign, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    q = db.query(Campaign).filter(Campaign.id == campaign.id)
    return _apply(db, campaign, q, {Campaign.budget: Campaign.budget + value})


def deduct_budget(db: Session, campaign: Campaign, amount: Any) -> bool:
    value = _positive(amount)
    if value is None:
        return False
    rows = (
        db.query(Campaign)
        .filter(Campaign.id == campaign.id, Campaign.spent + value <= Campaign.budget)
        .update({Campaign.spent: Campaign.spent + value}, synchronize_session=False)
    )
    if int(rows or 0) != 1:
        db.refresh(campaign)
        return False
    (
        db.query(Campaign)
        .filter(Campaign.id == campaign.id, Campaign.spent >= Campaign.budget)
        .update({Campaign.is_active: False}, synchronize_session=False)
    )
    db.refresh(campaign)
    return True


def settle_budget(db: Session, campaign: Campaign) -> Decimal | None:
    """Shrink the budget down to what has been spent.

    Returns the released amount (``0`` when nothing was unused) or ``None``
    when a concurrent charge changed the row between the read and the write.
    """
    row = (
        db.query(Campaign.budget, Campaign.spent)
        .filter(Campaign.id == campaign.id)
        .with_for_update()
        .first()
    )
    if row is None:
        return None
    unused = Decimal(row.budget or 0) - Decimal(row.spent or 0)
    if unused <= ZERO:
        return ZERO
    rows = (
        db.query(Campaign)
        .filter(Campaign.id == campaign.id, Campaign.budget - Campaign.spent >= unused)
        .update({Campaign.budget: Campaign.budget - unused}, synchronize_session=False)
    )
    db.refresh(campaign)
    if int(rows or 0) != 1:
        return None
    return unused
