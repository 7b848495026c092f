"""
ROUTES PAIEMENT - dépôts, callbacks fournisseurs, liens de paiement et retraits
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from urllib.parse import urlencode
import logging

from paywallet.config import settings
from paywallet.database import get_db
from paywallet.exceptions import PaymentError
from paywallet.middleware.rate_limit import limiter, MONEY_LIMIT, WEBHOOK_LIMIT
from paywallet.models.user_models import User
from paywallet.schemas.payment_schemas import (
    CashfreeReturnRequest, CheckoutOrderRequest, CheckoutVerifyRequest, DepositOrderRequest,
    DepositVerifyRequest, GenerateLinkRequest, RejectRequest, RequestMoneyRequest, WithdrawRequest,
)
from paywallet.services import checkout_service, payment_service, withdrawal_service
from paywallet.services.auth import get_current_user_from_token, verify_admin
from paywallet.services.gateways import OrderMetadata
from paywallet.services.ledger_service import list_transactions, to_decimal
from paywallet.utils.ids import now_ms

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


# ==================== DÉPÔT SUR LE PORTEFEUILLE ====================

@router.post("/create-order")
@limiter.limit(MONEY_LIMIT)
def create_deposit_order(
    request: Request,
    order_data: DepositOrderRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    """Commande de dépôt chez la passerelle active"""
    try:
        amount = to_decimal(order_data.amount) if order_data.amount else None
    except (ArithmeticError, ValueError, TypeError):
        amount = None
    if amount is None or amount <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount")

    backend = settings.BACKEND_URL
    result = payment_service.create_gateway_order(db, amount, OrderMetadata(
        flow_type="deposit",
        receipt=f"deposit_{now_ms()}",
        productinfo="Wallet Deposit",
        firstname=current_user.full_name or "User",
        email=current_user.email,
        phone=current_user.phone,
        customer_id=str(current_user.id),
        udf1=str(current_user.id),
        udf3="deposit",
        surl=f"{backend}/api/payment/payu/success",
        furl=f"{backend}/api/payment/payu/failure",
    ))
    logger.info(f"💳 Commande de dépôt {result.provider_order_id} ({amount} ₹) via {result.gateway}")
    return {"success": True, **result}


@router.post("/verify")
@limiter.limit(MONEY_LIMIT)
def verify_deposit(
    request: Request,
    payload: DepositVerifyRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    if not (payload.razorpay_order_id and payload.razorpay_payment_id
            and payload.razorpay_signature and payload.amount):
        raise HTTPException(status_code=400, detail="Missing payment details")

    credited = payment_service.verify_deposit(
        db, current_user.id, payload.amount,
        payload.razorpay_order_id, payload.razorpay_payment_id, payload.razorpay_signature,
        gateway_hint=payload.gateway,
    )
    if not credited:
        return {"success": True, "message": "Payment already processed"}
    return {"success": True, "message": "Payment verified & balance updated"}


# ==================== CALLBACKS FOURNISSEURS ====================

@router.post("/payu/success")
@limiter.limit(WEBHOOK_LIMIT)
async def payu_success(request: Request, db: Session = Depends(get_db)):
    """Retour navigateur PayU (formulaire POST), redirigé vers le frontend"""
    form = dict(await request.form())
    try:
        url = payment_service.handle_payu_callback(db, form)
    except PaymentError as e:
        logger.error(f"❌ Callback PayU en erreur: {e.message}")
        db.rollback()
        url = f"{settings.FRONTEND_URL}/payment/failed?{urlencode({'reason': 'server_error'})}"
    return RedirectResponse(url, status_code=302)


@router.post("/payu/failure")
@limiter.limit(WEBHOOK_LIMIT)
async def payu_failure(request: Request):
    form = dict(await request.form())
    return RedirectResponse(payment_service.handle_payu_failure(form), status_code=302)


@router.post("/cashfree/verify-return")
@limiter.limit(WEBHOOK_LIMIT)
def cashfree_verify_return(request: Request, payload: CashfreeReturnRequest, db: Session = Depends(get_db)):
    message = payment_service.verify_cashfree_return(
        db, payload.flow, payload.order_id, link_id=payload.link_id, qr_id=payload.qr_id,
    )
    return {"success": True, "message": message}


@router.post("/webhook")
@limiter.limit(WEBHOOK_LIMIT)
async def razorpay_webhook(request: Request, db: Session = Depends(get_db)):
    """Signature calculée sur le corps brut, avant tout décodage JSON"""
    raw_body = await request.body()
    return payment_service.handle_razorpay_webhook(
        db, raw_body, request.headers.get("x-razorpay-signature"),
    )


# ==================== LIENS DE PAIEMENT ====================

@router.post("/request-money")
@limiter.limit(MONEY_LIMIT)
def request_money(
    request: Request,
    payload: RequestMoneyRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return checkout_service.request_money(
        db, current_user.id, payload.name, payload.email, payload.amount, payload.description,
    )


@router.post("/generate-link")
@limiter.limit(MONEY_LIMIT)
def generate_link(
    request: Request,
    payload: GenerateLinkRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return checkout_service.generate_link(
        db, current_user.id, payload.name, payload.email, payload.amount,
        description=payload.description, due_date=payload.due_date,
    )


@router.get("/checkout/{link_id}")
def get_checkout(link_id: str, db: Session = Depends(get_db)):
    return checkout_service.get_checkout(db, link_id)


@router.post("/checkout/create-order")
@limiter.limit(MONEY_LIMIT)
def create_checkout_order(request: Request, payload: CheckoutOrderRequest, db: Session = Depends(get_db)):
    if not payload.link_id:
        raise HTTPException(status_code=400, detail="Link ID is required")
    return checkout_service.create_checkout_order(db, payload.link_id)


@router.post("/checkout/verify")
@limiter.limit(MONEY_LIMIT)
def verify_checkout(request: Request, payload: CheckoutVerifyRequest, db: Session = Depends(get_db)):
    if not (payload.razorpay_order_id and payload.razorpay_payment_id
            and payload.razorpay_signature and payload.link_id):
        raise HTTPException(status_code=400, detail="Missing payment details")

    credited = payment_service.verify_checkout(
        db, payload.link_id, payload.razorpay_order_id, payload.razorpay_payment_id,
        payload.razorpay_signature, gateway_hint=payload.gateway,
    )
    if not credited:
        return {"success": True, "message": "Payment already verified"}
    return {"success": True, "message": "Payment successful"}


# ==================== RETRAITS ====================

@router.post("/withdraw")
@limiter.limit(MONEY_LIMIT)
def withdraw(
    request: Request,
    payload: WithdrawRequest,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    withdrawal = withdrawal_service.request_withdrawal(
        db, current_user.id, payload.amount, payload.account_name,
        payload.account_number, payload.ifsc, payload.bank_name, kind="payout",
    )
    return {
        "success": True,
        "message": "Payout request submitted. Awaiting admin approval.",
        "withdrawal": withdrawal.to_dict(),
    }


@router.post("/admin/approve/{withdrawal_id}")
def approve_withdrawal(
    withdrawal_id: int,
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    result = withdrawal_service.approve_withdrawal(db, withdrawal_id, admin_user.id)
    return {
        "success": True,
        "message": "Withdrawal approved & balance deducted",
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


@router.get("/admin/withdrawals")
def list_withdrawals(
    admin_user: User = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    withdrawals = withdrawal_service.list_withdrawals(db, kind="payout")
    return {"success": True, "withdrawals": [w.to_dict() for w in withdrawals]}


# ==================== HISTORIQUE ====================

@router.get("/transactions")
def my_transactions(
    limit: int = 100,
    offset: int = 0,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    transactions = list_transactions(db, current_user.id, limit=min(limit, 500), offset=offset)
    return {
        "success": True,
        "balance": float(current_user.balance or 0),
        "transactions": [t.to_dict() for t in transactions],
    }
