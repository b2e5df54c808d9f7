from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from smartlink.api.endpoints.account import load_user
from smartlink.core.database import get_db
from smartlink.core.security import CurrentUser, get_current_user, get_request_meta
from smartlink.models.withdrawal import Withdrawal
from smartlink.schemas.financial import (
    BalanceResponse,
    DepositRequest,
    PayeerDepositRequest,
    WithdrawalResponse,
    WithdrawRequest,
)
from smartlink.services import financial, payeer


router = APIRouter()


@router.post("/deposit", response_model=BalanceResponse)
async def deposit(
    body: DepositRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    user = load_user(db, current_user)
    result = financial.deposit(db, user, body.amount, meta=get_request_meta(request))
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    db.refresh(user)
    return BalanceResponse(
        message="Deposit successful",
        balance=user.balance,
        frozen_balance=user.frozen_balance,
        amount=result["amount"],
    )


@router.post("/deposit/payeer")
async def deposit_payeer(
    body: PayeerDepositRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> dict:
    user = load_user(db, current_user)
    result = payeer.initiate_deposit(db, user, body.amount, body.description, meta=get_request_meta(request))
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return {
        "order_id": result["order_id"],
        "redirect_url": result["redirect_url"],
        "form": result["data"],
    }


@router.post("/withdraw", response_model=WithdrawalResponse, status_code=201)
async def withdraw(
    body: WithdrawRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    user = load_user(db, current_user)
    result = financial.create_withdrawal(db, user, body.amount, meta=get_request_meta(request))
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return result["withdrawal"]


@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    return (
        db.query(Withdrawal)
        .filter(Withdrawal.user_id == current_user.id)
        .order_by(Withdrawal.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
