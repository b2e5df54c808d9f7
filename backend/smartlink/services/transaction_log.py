from __future__ import annotations

from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from smartlink.models.transaction_log import TransactionLog, TransactionStatus, TransactionType


RECONCILABLE_STATUSES = (TransactionStatus.PENDING.value, TransactionStatus.FAILED.value)


def new_reference(prefix: str, user_id: int) -> str:
    return f"{prefix}_{int(user_id)}_{uuid4().hex[:13]}"


def _value(v: Any) -> Any:
    return getattr(v, "value", v)


def record(
    db: Session,
    *,
    user_id: int,
    amount: Any,
    type: TransactionType | str,
    reference: str | None = None,
    status: TransactionStatus | str = TransactionStatus.COMPLETED,
    description: str | None = None,
    meta: dict[str, Any] | None = None,
) -> TransactionLog:
    meta = meta or {}
    entry = TransactionLog(
        user_id=int(user_id),
        amount=amount,
        type=_value(type),
        reference=reference,
        status=_value(status),
        description=description,
        ip_address=meta.get("ip_address"),
        user_agent=meta.get("user_agent"),
    )
    db.add(entry)
    db.flush()
    return entry


def find_by_reference(db: Session, reference: str, type: TransactionType | str) -> TransactionLog | None:
    return (
        db.query(TransactionLog)
        .filter(TransactionLog.reference == reference, TransactionLog.type == _value(type))
        .order_by(TransactionLog.id.asc())
        .first()
    )


def lock_by_reference(db: Session, reference: str, type: TransactionType | str) -> TransactionLog | None:
    return (
        db.query(TransactionLog)
        .filter(TransactionLog.reference == reference, TransactionLog.type == _value(type))
        .order_by(TransactionLog.id.asc())
        .with_for_update()
        .populate_existing()
        .first()
    )


def reconcile(
    db: Session,
    *,
    reference: str,
    type: TransactionType | str,
    new_status: TransactionStatus | str,
    description: str | None = None,
    meta: dict[str, Any] | None = None,
) -> TransactionLog | None:
    """Move the pending/failed row for ``reference`` to ``new_status``.

    Completed rows are never touched, which makes webhook replays harmless.
    """
    entry = (
        db.query(TransactionLog)
        .filter(
            TransactionLog.reference == reference,
            TransactionLog.type == _value(type),
            TransactionLog.status.in_(RECONCILABLE_STATUSES),
        )
        .with_for_update()
        .first()
    )
    if entry is None:
        return None
    entry.status = _value(new_status)
    if description is not None:
        entry.description = description
    if meta:
        entry.ip_address = meta.get("ip_address") or entry.ip_address
        entry.user_agent = meta.get("user_agent") or entry.user_agent
    db.flush()
    return entry
