from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import CurrentUser, get_current_user
from smartlink.schemas.user import AnalyticsEventResponse, DashboardStatsResponse
from smartlink.services import analytics


router = APIRouter()


@router.get("/stats/dashboard", response_model=DashboardStatsResponse)
async def dashboard(
    period: str = "month",
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    period = (period or "month").strip().lower()
    if period not in analytics.PERIODS:
        raise HTTPException(status_code=422, detail=f"period must be one of: {', '.join(analytics.PERIODS)}")
    stats = analytics.dashboard_stats(db, current_user.id, period)
    return DashboardStatsResponse(period=period, **stats)


@router.get("/stats/events", response_model=list[AnalyticsEventResponse])
async def events(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return analytics.recent_events(db, current_user.id, limit)
