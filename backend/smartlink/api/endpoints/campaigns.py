from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import CurrentUser, get_current_user
from smartlink.models.ad_slot import AdSlot
from smartlink.models.campaign import Campaign
from smartlink.models.creative import CREATIVE_TYPES, Creative
from smartlink.models.site import Site
from smartlink.schemas.campaign import (
    AssociateCampaignRequest,
    BudgetAllocateRequest,
    CampaignCreate,
    CampaignListResponse,
    CampaignResponse,
    CreativeCreate,
    CreativeResponse,
)
from smartlink.services import ad_serving, campaign_budget
from smartlink.services.ledger import as_utc, utcnow


router = APIRouter(dependencies=[Depends(get_current_user)])


def _owned_campaign(db: Session, campaign_id: int, user: CurrentUser) -> Campaign:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    if campaign.user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not own this campaign")
    return campaign


def _owned_ad_slot(db: Session, ad_slot_id: int, user: CurrentUser) -> AdSlot:
    ad_slot = db.query(AdSlot).filter(AdSlot.id == ad_slot_id).first()
    if ad_slot is None:
        raise HTTPException(status_code=404, detail="Ad slot not found")
    site = db.query(Site).filter(Site.id == ad_slot.site_id).first()
    if site is None or site.user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not own this ad slot")
    return ad_slot


@router.post("/campaigns", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    body: CampaignCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    start_date = as_utc(body.start_date) or utcnow()
    end_date = as_utc(body.end_date)
    if end_date is not None and end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must be after start_date")
    campaign = Campaign(
        user_id=current_user.id,
        name=body.name,
        description=body.description,
        budget=0,
        spent=0,
        start_date=start_date,
        end_date=end_date,
        is_active=False,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


@router.get("/campaigns", response_model=CampaignListResponse)
async def list_campaigns(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    q = db.query(Campaign).filter(Campaign.user_id == current_user.id)
    total = q.count()
    items = q.order_by(Campaign.id.desc()).offset(offset).limit(limit).all()
    return CampaignListResponse(items=[CampaignResponse.model_validate(c) for c in items], total=total)


@router.get("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return _owned_campaign(db, campaign_id, current_user)


@router.delete("/campaigns/{campaign_id}", status_code=204)
async def delete_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    campaign = _owned_campaign(db, campaign_id, current_user)
    if not campaign_budget.delete_campaign(db, campaign):
        raise HTTPException(status_code=500, detail="Failed to delete campaign")


@router.post("/campaigns/{campaign_id}/allocate-budget")
async def allocate_budget(
    campaign_id: int,
    body: BudgetAllocateRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    campaign = _owned_campaign(db, campaign_id, current_user)
    if not campaign_budget.allocate_budget(db, campaign, body.amount):
        raise HTTPException(status_code=400, detail="Insufficient funds")
    db.refresh(campaign)
    return {"message": "Budget allocated successfully", "campaign": CampaignResponse.model_validate(campaign)}


@router.post("/campaigns/{campaign_id}/activate")
async def activate_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    campaign = _owned_campaign(db, campaign_id, current_user)
    if not campaign_budget.activate_campaign(db, campaign):
        raise HTTPException(status_code=400, detail="Cannot activate campaign. Check budget and dates.")
    db.refresh(campaign)
    return {"message": "Campaign activated successfully", "campaign": CampaignResponse.model_validate(campaign)}


@router.post("/campaigns/{campaign_id}/deactivate")
async def deactivate_campaign(
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    campaign = _owned_campaign(db, campaign_id, current_user)
    if not campaign_budget.deactivate_campaign(db, campaign):
        raise HTTPException(status_code=409, detail="Campaign changed concurrently, retry")
    db.refresh(campaign)
    return {"message": "Campaign deactivated successfully", "campaign": CampaignResponse.model_validate(campaign)}


@router.post("/ad-slots/{ad_slot_id}/campaigns")
async def associate_campaign(
    ad_slot_id: int,
    body: AssociateCampaignRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    ad_slot = _owned_ad_slot(db, ad_slot_id, current_user)
    campaign = db.query(Campaign).filter(Campaign.id == body.campaign_id).first()
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    if not ad_serving.associate_campaign(db, ad_slot, campaign):
        raise HTTPException(status_code=500, detail="Failed to associate campaign")
    return {"message": "Campaign associated successfully"}


@router.delete("/ad-slots/{ad_slot_id}/campaigns/{campaign_id}")
async def dissociate_campaign(
    ad_slot_id: int,
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    ad_slot = _owned_ad_slot(db, ad_slot_id, current_user)
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    if not ad_serving.dissociate_campaign(db, ad_slot, campaign):
        raise HTTPException(status_code=500, detail="Failed to dissociate campaign")
    return {"message": "Campaign dissociated successfully"}


@router.post("/campaigns/{campaign_id}/creatives", response_model=CreativeResponse, status_code=201)
async def create_creative(
    campaign_id: int,
    body: CreativeCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    campaign = _owned_campaign(db, campaign_id, current_user)
    creative_type = body.type.strip().lower()
    if creative_type not in CREATIVE_TYPES:
        raise HTTPException(status_code=422, detail=f"type must be one of: {', '.join(CREATIVE_TYPES)}")
    creative = Creative(
        campaign_id=campaign.id,
        name=body.name.strip(),
        type=creative_type,
        content=body.content,
        url=body.url.strip(),
        is_active=True,
    )
    db.add(creative)
    db.commit()
    db.refresh(creative)
    return creative


@router.get("/campaigns/{campaign_id}/creatives", response_model=list[CreativeResponse])
async def list_creatives(
    campaign_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    campaign = _owned_campaign(db, campaign_id, current_user)
    return db.query(Creative).filter(Creative.campaign_id == campaign.id).order_by(Creative.id.asc()).all()
