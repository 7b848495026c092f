"""
ROUTES DEMANDES DE VERSEMENT - côté marchand et validation admin
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging

from paywallet.database import get_db
from paywallet.middleware.rate_limit import limiter, MONEY_LIMIT
from paywallet.models.user_models import User
from paywallet.schemas.payout_schemas import PayoutApprove, PayoutComplete, PayoutCreate, PayoutReject
from paywallet.services import withdrawal_service
from paywallet.services.auth import get_current_user_from_token, verify_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payout", tags=["payout"])


@router.post("/request")
@limiter.limit(MONEY_LIMIT)
def request_payout(
    request: Request,
    payload: PayoutCreate,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    payout = withdrawal_service.create_payout_request(
        db, current_user.id, payload.amount, payload.method,
        account_number=payload.account_number,
        ifsc_code=payload.ifsc_code,
        account_holder_name=payload.account_holder_name,
        bank_name=payload.bank_name,
        upi_id=payload.upi_id,
    )
    return JSONResponse(status_code=201, content={
        "success": True,
        "message": "Payout request submitted successfully. Waiting for admin approval.",
        "request": payout.to_dict(),
    })


@router.get("/my-requests")
def my_payout_requests(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    result = withdrawal_service.list_vendor_payouts(
        db, current_user.id, status=status, limit=limit, offset=(page - 1) * limit,
    )
    total = result["total"]
    return {
        "success": True,
        "requests": [p.to_dict() for p in result["items"]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit,
        },
    }


@router.get("/request/{payout_ref}")
def get_payout_request(
    payout_ref: str,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    payout = withdrawal_service.get_vendor_payout(db, current_user.id, payout_ref)
    return {"success": True, "request": payout.to_dict()}


@router.put("/cancel/{payout_ref}")
def cancel_payout_request(
    payout_ref: str,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    payout = withdrawal_service.get_vendor_payout(db, current_user.id, payout_ref)
    payout = withdrawal_service.cancel_payout(db, payout)
    return {"success": True, "message": "Payout request cancelled", "request": payout.to_dict()}


# ==================== ADMIN ====================

@router.get("/admin/all")
def all_payout_requests(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    result = withdrawal_service.list_all_payouts(db, status=status, page=page, limit=min(max(limit, 1), 100))
    return {
        "success": True,
        "requests": [p.to_dict() for p in result["items"]],
        "stats": result["stats"],
        "pagination": result["pagination"],
    }


@router.put("/admin/approve/{payout_id}")
def approve_payout_request(
    payout_id: int,
    payload: PayoutApprove,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    result = withdrawal_service.approve_payout(
        db, payout_id, admin_user.id, fee=payload.fee, admin_note=payload.admin_note,
    )
    return {
        "success": True,
        "message": "Payout request approved. Amount deducted from vendor balance.",
        "request": result["request"].to_dict(),
        "vendorNewBalance": float(result["vendorNewBalance"]),
        "deducted": float(result["deducted"]),
    }


@router.put("/admin/reject/{payout_id}")
def reject_payout_request(
    payout_id: int,
    payload: PayoutReject,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    payout = withdrawal_service.reject_payout(db, payout_id, admin_user.id, payload.reason)
    return {"success": True, "message": "Payout request rejected", "request": payout.to_dict()}


@router.put("/admin/complete/{payout_id}")
def complete_payout_request(
    payout_id: int,
    payload: PayoutComplete,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    payout = withdrawal_service.complete_payout(db, payout_id, admin_user.id, payload.transaction_id)
    return {"success": True, "message": "Payout marked as completed", "request": payout.to_dict()}
