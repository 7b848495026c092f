"""
ROUTES QR - génération, checkout public et vérification des paiements par QR
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import Optional
import logging

from paywallet.database import get_db
from paywallet.middleware.rate_limit import limiter, MONEY_LIMIT, WEBHOOK_LIMIT
from paywallet.models.user_models import User
from paywallet.schemas.qr_schemas import QRGenerateRequest, QROrderRequest, QRVerifyRequest, StaticQRGenerateRequest
from paywallet.services import payment_service, qr_service
from paywallet.services.auth import get_current_user_from_token, verify_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/qr", tags=["qr"])


@router.post("/generate")
@limiter.limit(MONEY_LIMIT)
def generate_qr(
    request: Request,
    payload: QRGenerateRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return qr_service.generate_qr(
        db, current_user.id, payload.amount, name=payload.name,
        description=payload.description, expiry_minutes=payload.expiry_minutes,
    )


@router.post("/generate-static")
@limiter.limit(MONEY_LIMIT)
def generate_static_qr(
    request: Request,
    payload: StaticQRGenerateRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return qr_service.generate_static_qr(db, current_user.id, payload.name, payload.description)


@router.get("/mine")
def my_qr_codes(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return qr_service.list_user_qrs(db, current_user.id)


@router.get("/admin/all")
def all_qr_codes(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    return qr_service.list_all_qrs(db, status=status, search=search, page=page, limit=min(limit, 200))


# ==================== CHECKOUT PUBLIC ====================

@router.get("/checkout/{qr_id}")
def get_qr_checkout(qr_id: str, db: Session = Depends(get_db)):
    return qr_service.get_qr_checkout(db, qr_id)


@router.post("/checkout/create-order")
@limiter.limit(MONEY_LIMIT)
def create_qr_order(request: Request, payload: QROrderRequest, db: Session = Depends(get_db)):
    if not payload.qr_id:
        raise HTTPException(status_code=400, detail="QR ID is required")
    return qr_service.create_qr_order(
        db, payload.qr_id, amount=payload.amount,
        payer_name=payload.payer_name, payer_email=payload.payer_email, payer_phone=payload.payer_phone,
        client_ip=request.client.host if request.client else None,
        device_info=request.headers.get("user-agent"),
    )


@router.post("/checkout/verify")
@limiter.limit(MONEY_LIMIT)
def verify_qr_payment(request: Request, payload: QRVerifyRequest, db: Session = Depends(get_db)):
    if not (payload.razorpay_order_id and payload.razorpay_payment_id
            and payload.razorpay_signature and payload.qr_id):
        raise HTTPException(status_code=400, detail="Missing payment details")

    credited = payment_service.verify_qr(
        db, payload.qr_id, payload.razorpay_order_id, payload.razorpay_payment_id,
        payload.razorpay_signature, gateway_hint=payload.gateway, amount=payload.amount,
        payer={
            "name": payload.payer_name or "Customer",
            "email": payload.payer_email or "",
            "phone": payload.payer_phone or "",
        },
    )
    if not credited:
        return {"success": True, "message": "Payment already verified"}
    return {"success": True, "message": "Payment successful"}


@router.post("/webhook/razorpay-qr")
@limiter.limit(WEBHOOK_LIMIT)
async def razorpay_qr_webhook(request: Request, db: Session = Depends(get_db)):
    raw_body = await request.body()
    return payment_service.handle_razorpay_webhook(
        db, raw_body, request.headers.get("x-razorpay-signature"),
    )


@router.delete("/{qr_id}")
def delete_qr(
    qr_id: str,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return qr_service.delete_qr(db, qr_id, current_user)
