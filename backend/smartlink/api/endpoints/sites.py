from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import CurrentUser, get_current_user
from smartlink.models.ad_slot import AdSlot
from smartlink.models.creative import CREATIVE_TYPES
from smartlink.models.site import Site
from smartlink.schemas.site import AdSlotCreate, AdSlotResponse, SiteCreate, SiteResponse


router = APIRouter(dependencies=[Depends(get_current_user)])


def owned_site(db: Session, site_id: int, user: CurrentUser) -> Site:
    site = db.query(Site).filter(Site.id == site_id).first()
    if site is None:
        raise HTTPException(status_code=404, detail="Site not found")
    if site.user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not own this site")
    return site


@router.post("/sites", response_model=SiteResponse, status_code=201)
async def create_site(
    body: SiteCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    site = Site(
        user_id=current_user.id,
        name=body.name.strip(),
        url=body.url.strip(),
        description=body.description,
        is_active=True,
    )
    db.add(site)
    db.commit()
    db.refresh(site)
    return site


@router.get("/sites", response_model=list[SiteResponse])
async def list_sites(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    return db.query(Site).filter(Site.user_id == current_user.id).order_by(Site.id.asc()).all()


@router.post("/sites/{site_id}/ad-slots", response_model=AdSlotResponse, status_code=201)
async def create_ad_slot(
    site_id: int,
    body: AdSlotCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    site = owned_site(db, site_id, current_user)
    slot_type = body.type.strip().lower()
    if slot_type not in CREATIVE_TYPES:
        raise HTTPException(status_code=422, detail=f"type must be one of: {', '.join(CREATIVE_TYPES)}")
    ad_slot = AdSlot(
        site_id=site.id,
        name=body.name.strip(),
        type=slot_type,
        dimensions=body.dimensions,
        price_per_click=body.price_per_click,
        price_per_impression=body.price_per_impression,
        is_active=True,
    )
    db.add(ad_slot)
    db.commit()
    db.refresh(ad_slot)
    return ad_slot


@router.get("/sites/{site_id}/ad-slots", response_model=list[AdSlotResponse])
async def list_ad_slots(
    site_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    site = owned_site(db, site_id, current_user)
    return db.query(AdSlot).filter(AdSlot.site_id == site.id).order_by(AdSlot.id.asc()).all()
