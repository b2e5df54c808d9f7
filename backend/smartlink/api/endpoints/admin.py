from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from smartlink.core.database import get_db
from smartlink.core.security import require_admin
from smartlink.models.withdrawal import Withdrawal
from smartlink.schemas.financial import WithdrawalNotesRequest, WithdrawalResponse
from smartlink.services import budget_monitor, financial


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

_TRANSITIONS = {
    "approve": financial.approve_withdrawal,
    "reject": financial.reject_withdrawal,
    "process": financial.process_withdrawal,
}


def _transition(db: Session, withdrawal_id: int, action: str, body: Optional[WithdrawalNotesRequest]) -> Withdrawal:
    withdrawal = db.query(Withdrawal).filter(Withdrawal.id == withdrawal_id).first()
    if withdrawal is None:
        raise HTTPException(status_code=404, detail="Withdrawal not found")
    result = _TRANSITIONS[action](db, withdrawal, notes=body.notes if body else None)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    db.refresh(withdrawal)
    return withdrawal


@router.post("/withdrawals/{withdrawal_id}/approve", response_model=WithdrawalResponse)
async def approve_withdrawal(
    withdrawal_id: int,
    body: Optional[WithdrawalNotesRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, withdrawal_id, "approve", body)


@router.post("/withdrawals/{withdrawal_id}/reject", response_model=WithdrawalResponse)
async def reject_withdrawal(
    withdrawal_id: int,
    body: Optional[WithdrawalNotesRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, withdrawal_id, "reject", body)


@router.post("/withdrawals/{withdrawal_id}/process", response_model=WithdrawalResponse)
async def process_withdrawal(
    withdrawal_id: int,
    body: Optional[WithdrawalNotesRequest] = None,
    db: Session = Depends(get_db),
):
    return _transition(db, withdrawal_id, "process", body)


@router.post("/jobs/budget-monitor")
async def run_budget_monitor(db: Session = Depends(get_db)) -> dict:
    return budget_monitor.run_budget_monitor(db)
