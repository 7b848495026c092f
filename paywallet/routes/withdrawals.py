"""
ROUTES DE RETRAIT BANCAIRE - demande utilisateur et validation admin
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from paywallet.database import get_db
from paywallet.middleware.rate_limit import limiter, MONEY_LIMIT
from paywallet.models.payout_models import Withdrawal
from paywallet.models.user_models import User
from paywallet.schemas.payment_schemas import RejectRequest, WithdrawRequest
from paywallet.services import withdrawal_service
from paywallet.services.auth import get_current_user_from_token, verify_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/withdraw", tags=["withdrawal"])


@router.post("/request")
@limiter.limit(MONEY_LIMIT)
def request_withdrawal(
    request: Request,
    payload: WithdrawRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Demande de retrait - débit effectif à l'approbation"""
    withdrawal = withdrawal_service.request_withdrawal(
        db, current_user.id, payload.amount, payload.account_name,
        payload.account_number, payload.ifsc, payload.bank_name, kind="withdrawal",
    )
    return {
        "success": True,
        "message": "Withdrawal request submitted. Awaiting admin approval.",
        "withdrawal": withdrawal.to_dict(),
    }


@router.get("/mine")
def my_withdrawals(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    withdrawals = (
        db.query(Withdrawal)
        .filter(Withdrawal.user_id == current_user.id)
        .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
        .all()
    )
    return {"success": True, "withdrawals": [w.to_dict() for w in withdrawals]}


@router.get("/admin/all")
def all_withdrawals(
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    withdrawals = withdrawal_service.list_withdrawals(db, kind="withdrawal")
    return {"success": True, "withdrawals": [w.to_dict() for w in withdrawals]}


@router.post("/admin/approve/{withdrawal_id}")
def approve_withdrawal(
    withdrawal_id: int,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    result = withdrawal_service.approve_withdrawal(db, withdrawal_id, admin_user.id)
    return {
        "success": True,
        "message": "Withdrawal approved successfully",
        "withdrawal": result["withdrawal"].to_dict(),
        "newBalance": float(result["newBalance"]),
    }


@router.post("/admin/reject/{withdrawal_id}")
def reject_withdrawal(
    withdrawal_id: int,
    payload: RejectRequest,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    withdrawal = withdrawal_service.reject_withdrawal(db, withdrawal_id, admin_user.id, payload.reason)
    return {"success": True, "message": "Withdrawal rejected", "withdrawal": withdrawal.to_dict()}
