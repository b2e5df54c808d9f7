from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class SiteCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    description: Optional[str] = None


class SiteResponse(BaseModel):
    id: int
    user_id: int
    name: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdSlotCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str
    dimensions: Optional[dict[str, Any]] = None
    price_per_click: Decimal = Field(default=Decimal("0"), ge=0)
    price_per_impression: Decimal = Field(default=Decimal("0"), ge=0)


class AdSlotResponse(BaseModel):
    id: int
    site_id: int
    name: Optional[str] = None
    type: Optional[str] = None
    dimensions: Optional[Any] = None
    price_per_click: Decimal
    price_per_impression: Decimal
    is_active: bool

    class Config:
        from_attributes = True
