from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import CurrentUser, get_current_user
from smartlink.models.user import User
from smartlink.schemas.user import ReferralStatsResponse, UserResponse
from smartlink.services import referral


router = APIRouter()


def load_user(db: Session, current_user: CurrentUser) -> User:
    user = db.query(User).filter(User.id == current_user.id).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/me", response_model=UserResponse)
async def me(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    user = load_user(db, current_user)
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=current_user.role,
        balance=user.balance or 0,
        frozen_balance=user.frozen_balance or 0,
        referral_code=user.referral_code,
        created_at=user.created_at,
    )


@router.get("/profile/referral-stats", response_model=ReferralStatsResponse)
async def referral_stats(db: Session = Depends(get_db), current_user: CurrentUser = Depends(get_current_user)):
    user = load_user(db, current_user)
    if not user.referral_code:
        user.referral_code = referral.generate_referral_code(user)
        db.commit()
        db.refresh(user)
    return referral.get_referral_stats(db, user)
