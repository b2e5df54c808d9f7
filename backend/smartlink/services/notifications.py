from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from sqlalchemy.orm import Session

from smartlink.core.database import on_commit
from smartlink.core.settings import settings
from smartlink.services.serialization import stable_json_dumps

logger = logging.getLogger(__name__)

WITHDRAWAL_APPROVED = "withdrawal_approved"
BALANCE_TOP_UP = "balance_top_up"
CAMPAIGN_BUDGET_WARNING = "campaign_budget_warning"
CAMPAIGN_DEACTIVATED = "campaign_deactivated"

_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="notify")


def _deliver(user_id: int, kind: str, payload: dict[str, Any]) -> None:
    import requests

    url = settings.notify_webhook_url
    body = stable_json_dumps({"user_id": int(user_id), "type": kind, "data": payload})
    if not url:
        logger.info("notifications.deliver.skipped user_id=%s type=%s body=%s", user_id, kind, body)
        return
    try:
        resp = requests.post(
            url,
            data=body.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=settings.notify_timeout_s,
        )
        if resp.status_code >= 400:
            logger.warning("notifications.deliver.rejected user_id=%s type=%s status=%s", user_id, kind, resp.status_code)
            return
        logger.info("notifications.deliver.ok user_id=%s type=%s", user_id, kind)
    except requests.RequestException:
        logger.exception("notifications.deliver.error user_id=%s type=%s", user_id, kind)


def notify(user_id: int, kind: str, payload: dict[str, Any] | None = None) -> Future:
    """Fire-and-forget delivery; returns the future for callers that want to wait."""
    return _executor.submit(_deliver, user_id, kind, dict(payload or {}))


def notify_on_commit(db: Session, user_id: int, kind: str, payload: dict[str, Any] | None = None) -> None:
    def _send() -> None:
        notify(user_id, kind, payload)

    _send.__name__ = f"notify_{kind}"
    on_commit(db, _send)
