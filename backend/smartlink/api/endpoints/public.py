from __future__ import annotations

import json
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import get_request_meta
from smartlink.models.ad_slot import AdSlot
from smartlink.schemas.campaign import AdResponse, CreativeResponse
from smartlink.services import ad_serving, payeer


router = APIRouter()


@router.get("/ad-slots/{ad_slot_id}/request", response_model=AdResponse)
async def request_ad(ad_slot_id: int, db: Session = Depends(get_db)):
    ad_slot = db.query(AdSlot).filter(AdSlot.id == ad_slot_id).first()
    if ad_slot is None:
        raise HTTPException(status_code=404, detail="Ad slot not found")

    result = ad_serving.process_ad_request(db, ad_slot)
    if result["success"]:
        return AdResponse(
            creative=CreativeResponse.model_validate(result["creative"]),
            campaign_id=result["campaign_id"],
        )
    if result["error"] == ad_serving.ERR_SLOT_INACTIVE:
        raise HTTPException(status_code=410, detail=result["error"])
    raise HTTPException(status_code=404, detail=result["error"])


async def _webhook_payload(request: Request) -> dict:
    raw_body = await request.body()
    content_type = (request.headers.get("content-type") or "").lower()
    try:
        if "application/json" in content_type:
            payload = json.loads(raw_body or b"{}")
        else:
            payload = dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid request")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid request")
    return {str(k): v for k, v in payload.items()}


@router.post("/deposit/payeer-webhook")
async def payeer_webhook(request: Request, db: Session = Depends(get_db)) -> dict:
    data = await _webhook_payload(request)
    if "m_operation_id" not in data or "m_sign" not in data:
        raise HTTPException(status_code=400, detail="Invalid request")

    result = payeer.process_deposit(db, data, meta=get_request_meta(request))
    if result["success"]:
        return {"status": "success", "order_id": data.get("m_orderid")}
    if result.get("duplicate"):
        raise HTTPException(status_code=409, detail=result["error"])
    raise HTTPException(status_code=400, detail=result["error"])
