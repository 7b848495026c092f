"""
API MARCHAND v1 - authentification HTTP Basic keyId:secretKey

Les erreurs sortent au format {"error": {"code", "description", "source"}}
via le gestionnaire MerchantAPIError enregistré dans main.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session
from typing import Optional
import logging

from paywallet.database import get_db
from paywallet.middleware.rate_limit import limiter, MERCHANT_LIMIT
from paywallet.models.user_models import ApiToken
from paywallet.schemas.merchant_schemas import MerchantPayoutCreate, OrderCreate, PaymentVerify, RefundCreate
from paywallet.services import merchant_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["merchant-api"])

basic_auth = HTTPBasic(auto_error=False)


def get_api_token(
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth),
    db: Session = Depends(get_db),
) -> ApiToken:
    """Clé API active correspondant aux identifiants Basic"""
    if credentials is None:
        raise merchant_service.missing_credentials_error()
    return merchant_service.authenticate_api_key(db, credentials.username, credentials.password)


# ==================== COMMANDES ====================

@router.post("/orders")
@limiter.limit(MERCHANT_LIMIT)
def create_order(
    request: Request,
    payload: OrderCreate,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    order = merchant_service.create_order(
        db, token, payload.amount, currency=payload.currency, receipt=payload.receipt,
        notes=payload.notes, callback_url=payload.callback_url, webhook_url=payload.webhook_url,
        customer=payload.customer,
    )
    return order


@router.get("/orders")
@limiter.limit(MERCHANT_LIMIT)
def list_orders(
    request: Request,
    count: int = 10,
    skip: int = 0,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.list_orders(db, token, count=count, skip=skip)


@router.get("/orders/{order_id}")
@limiter.limit(MERCHANT_LIMIT)
def get_order(
    request: Request,
    order_id: str,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.serialize_order(merchant_service.get_order(db, token, order_id))


# ==================== PAIEMENTS ====================

@router.post("/payments/verify")
@limiter.limit(MERCHANT_LIMIT)
def verify_payment(
    request: Request,
    payload: PaymentVerify,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.verify_payment(db, token, payload.order_id, payload.payment_id, payload.signature)


@router.get("/payments/{payment_id}")
@limiter.limit(MERCHANT_LIMIT)
def get_payment(
    request: Request,
    payment_id: str,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.get_payment(db, token, payment_id)


@router.post("/payments/{payment_id}/refunds")
@limiter.limit(MERCHANT_LIMIT)
def create_refund(
    request: Request,
    payment_id: str,
    payload: RefundCreate,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    refund = merchant_service.create_refund(db, token, payment_id, amount=payload.amount, notes=payload.notes)
    return refund


@router.get("/test")
@limiter.limit(MERCHANT_LIMIT)
def connection_test(
    request: Request,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.connection_test(db, token)


# ==================== VERSEMENTS ====================

@router.post("/payouts")
@limiter.limit(MERCHANT_LIMIT)
def create_payout(
    request: Request,
    payload: MerchantPayoutCreate,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    payout = merchant_service.create_payout(
        db, token, payload.amount, payload.method, currency=payload.currency,
        bank_account=payload.bank_account, upi=payload.upi, notes=payload.notes,
    )
    return payout


@router.get("/payouts")
@limiter.limit(MERCHANT_LIMIT)
def list_payouts(
    request: Request,
    status: Optional[str] = None,
    count: int = 10,
    skip: int = 0,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.list_payouts(db, token, status=status, count=count, skip=skip)


@router.get("/payouts/{payout_id}")
@limiter.limit(MERCHANT_LIMIT)
def get_payout(
    request: Request,
    payout_id: str,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.get_payout(db, token, payout_id)


@router.post("/payouts/{payout_id}/cancel")
@limiter.limit(MERCHANT_LIMIT)
def cancel_payout(
    request: Request,
    payout_id: str,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.cancel_payout(db, token, payout_id)


@router.get("/balance")
@limiter.limit(MERCHANT_LIMIT)
def get_balance(
    request: Request,
    token: ApiToken = Depends(get_api_token),
    db: Session = Depends(get_db),
):
    return merchant_service.get_balance(db, token)
