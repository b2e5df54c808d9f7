from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class CampaignCreate(BaseModel):
    name: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BudgetAllocateRequest(BaseModel):
    amount: Decimal = Field(gt=0)


class CreativeResponse(BaseModel):
    id: int
    campaign_id: int
    name: Optional[str] = None
    type: str
    content: Optional[Any] = None
    url: Optional[str] = None

    class Config:
        from_attributes = True


class CampaignResponse(BaseModel):
    id: int
    user_id: int
    name: Optional[str] = None
    description: Optional[str] = None
    budget: Decimal
    spent: Decimal
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True


class CampaignListResponse(BaseModel):
    items: List[CampaignResponse]
    total: int


class AdResponse(BaseModel):
    creative: CreativeResponse
    campaign_id: int


class AssociateCampaignRequest(BaseModel):
    campaign_id: int


class CreativeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str
    content: Optional[Any] = None
    url: str = Field(min_length=1, max_length=2048)
