from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from smartlink.models.withdrawal import WithdrawalStatus


class DepositRequest(BaseModel):
    amount: Decimal = Field(ge=Decimal("0.01"))


class PayeerDepositRequest(BaseModel):
    amount: Decimal = Field(ge=Decimal("0.01"))
    description: str = "SmartLink Deposit"


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(ge=Decimal("1"))


class WithdrawalNotesRequest(BaseModel):
    notes: Optional[str] = None


class WithdrawalResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    status: WithdrawalStatus
    processed_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    message: str
    balance: Decimal
    frozen_balance: Decimal
    amount: Decimal
