from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class UserResponse(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    role: str
    balance: Decimal
    frozen_balance: Decimal
    referral_code: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReferralStatsResponse(BaseModel):
    referral_code: Optional[str] = None
    referred_users_count: int
    total_earnings: Decimal


class DashboardStatsResponse(BaseModel):
    period: str
    revenue: Decimal
    spend: Decimal
    impressions: int
    clicks: int
    ctr: float


class AnalyticsEventResponse(BaseModel):
    id: int
    type: str
    related_type: str
    related_id: int
    related_name: Optional[str] = None
    cost: Optional[Decimal] = None
    created_at: Optional[datetime] = None
