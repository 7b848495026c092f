"""
SERVICE API MARCHAND (v1) - commandes, vérification, remboursements,
versements et solde, authentifiés par clé API

Toutes les erreurs sortent en MerchantAPIError, rendues au format
{"error": {"code", "description", "source", "field"?}}.
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from paywallet.config import settings
from paywallet.exceptions import (
    BAD_REQUEST_ERROR, INSUFFICIENT_BALANCE, NOT_FOUND_ERROR, SERVER_ERROR, UNAUTHORIZED,
    InsufficientBalanceError, MerchantAPIError, PaymentError,
)
from paywallet.models.order_models import Order, OrderStatus
from paywallet.models.payout_models import PayoutRequest
from paywallet.models.user_models import ApiToken, User
from paywallet.services import withdrawal_service
from paywallet.services.gateways.razorpay_gateway import payment_signature
from paywallet.services.ledger_service import paise_to_rupees, rupees_to_paise, to_decimal
from paywallet.services.payment_service import credit_api_order
from paywallet.utils.clock import unix_seconds, utcnow
from paywallet.utils.ids import generate_order_id, generate_refund_id
from paywallet.utils.security import mask_account_number, secure_compare

logger = logging.getLogger(__name__)

KEY_PREFIXES = ("sat_test_", "sat_live_")
MIN_AMOUNT_PAISE = 100
MAX_PAGE_SIZE = 100


# ==================== AUTHENTIFICATION ====================

def authenticate_api_key(db: Session, key_id: Optional[str], secret_key: Optional[str]) -> ApiToken:
    """Valider keyId:secretKey et horodater l'utilisation de la clé."""
    if not key_id or not secret_key:
        raise MerchantAPIError(
            BAD_REQUEST_ERROR,
            "Invalid API credentials format. Both Key ID and Secret Key are required.",
            status_code=401, source="api",
        )
    if not key_id.startswith(KEY_PREFIXES):
        raise MerchantAPIError(
            BAD_REQUEST_ERROR,
            "Invalid Key ID format. Key ID should start with sat_test_ or sat_live_",
            status_code=401, source="api",
        )

    token = (
        db.query(ApiToken)
        .filter(ApiToken.key_id == key_id, ApiToken.status == "active")
        .first()
    )
    if not token or not secure_compare(token.secret_key, secret_key):
        logger.warning(f"🚫 Authentification API refusée pour {key_id[:15]}...")
        raise MerchantAPIError(
            BAD_REQUEST_ERROR,
            "Authentication failed. Invalid Key ID or Secret Key.",
            status_code=401, source="api",
        )

    token.last_used_at = utcnow()
    db.commit()
    return token


def missing_credentials_error() -> MerchantAPIError:
    return MerchantAPIError(
        UNAUTHORIZED,
        "API key is required. Use HTTP Basic Auth with Key ID as username and Secret Key as password.",
        status_code=401, source="api",
    )


# ==================== COMMANDES ====================

def serialize_order(order: Order) -> Dict:
    return {
        "id": order.order_id,
        "entity": "order",
        "amount": order.amount,
        "amount_paid": order.amount_paid or 0,
        "amount_due": order.amount_due,
        "currency": order.currency,
        "receipt": order.receipt,
        "status": order.status,
        "attempts": order.attempts or 0,
        "notes": order.notes or {},
        "created_at": unix_seconds(order.created_at),
    }


def _validate_paise(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise MerchantAPIError(
            BAD_REQUEST_ERROR, "The amount field is required and must be greater than 0", field="amount",
        )
    if amount < MIN_AMOUNT_PAISE:
        raise MerchantAPIError(
            BAD_REQUEST_ERROR, "The minimum amount is 100 paise (₹1.00)", field="amount",
        )
    if int(amount) != amount:
        raise MerchantAPIError(BAD_REQUEST_ERROR, "The amount must be an integer in paise", field="amount")
    return int(amount)


def create_order(db: Session, token: ApiToken, amount: Any, currency: str = "INR",
                 receipt: Optional[str] = None, notes: Optional[dict] = None,
                 callback_url: Optional[str] = None, webhook_url: Optional[str] = None,
                 customer: Optional[Dict[str, str]] = None) -> Dict:
    amount = _validate_paise(amount)
    customer = customer or {}

    order = Order(
        order_id=generate_order_id(),
        merchant_id=token.user_id,
        amount=amount,
        amount_paid=0,
        currency=currency or "INR",
        receipt=receipt,
        notes=notes or {},
        status=OrderStatus.CREATED,
        callback_url=callback_url,
        webhook_url=webhook_url,
        customer_name=customer.get("name"),
        customer_email=customer.get("email"),
        customer_phone=customer.get("contact"),
        mode=token.mode,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info(f"🧾 Commande API {order.order_id} ({amount} paise) marchand={token.user_id}")

    return {
        **serialize_order(order),
        "offer_id": None,
        "payment_url": f"{settings.FRONTEND_URL}/pay/{order.order_id}",
    }


def get_order(db: Session, token: ApiToken, order_id: str) -> Order:
    order = (
        db.query(Order)
        .filter(Order.order_id == order_id, Order.merchant_id == token.user_id)
        .first()
    )
    if not order:
        raise MerchantAPIError(BAD_REQUEST_ERROR, f"Order {order_id} not found", status_code=404)
    return order


def list_orders(db: Session, token: ApiToken, count: int = 10, skip: int = 0) -> Dict:
    count = min(max(int(count or 10), 1), MAX_PAGE_SIZE)
    orders = (
        db.query(Order)
        .filter(Order.merchant_id == token.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(max(int(skip or 0), 0))
        .limit(count)
        .all()
    )
    items = [serialize_order(order) for order in orders]
    return {"entity": "collection", "count": len(items), "items": items}


# ==================== PAIEMENTS ====================

def verify_payment(db: Session, token: ApiToken, order_id: Optional[str], payment_id: Optional[str],
                   signature: Optional[str]) -> Dict:
    """
    HMAC-SHA256(order_id|payment_id) avec le secret du mode de la clé.
    Crédite le marchand une seule fois par payment_id.
    """
    if not order_id or not payment_id or not signature:
        raise MerchantAPIError(BAD_REQUEST_ERROR, "order_id, payment_id, and signature are required")

    secret = settings.merchant_verify_secret(token.mode)
    if not secret:
        logger.error(f"❌ Secret de vérification absent pour le mode {token.mode}")
        raise MerchantAPIError(SERVER_ERROR, "Failed to verify payment", status_code=500, source="internal")

    if not secure_compare(payment_signature(order_id, payment_id, secret), signature):
        raise MerchantAPIError(BAD_REQUEST_ERROR, "Payment signature verification failed")

    order = get_order(db, token, order_id)
    if order.status == OrderStatus.PAID and order.payment_id != payment_id:
        raise MerchantAPIError(BAD_REQUEST_ERROR, f"Order {order_id} is already paid")
    if order.status in (OrderStatus.REFUNDED, OrderStatus.EXPIRED):
        raise MerchantAPIError(BAD_REQUEST_ERROR, f"Order {order_id} is {order.status}")

    credited = credit_api_order(db, order, payment_id, via="api", signature=signature)
    db.commit()
    if not credited:
        logger.info(f"🔁 Vérification rejouée pour {payment_id}, aucun nouveau crédit")

    return {"status": "verified", "message": "Payment signature verified successfully"}


def _order_by_payment(db: Session, token: ApiToken, payment_id: str) -> Order:
    order = (
        db.query(Order)
        .filter(Order.payment_id == payment_id, Order.merchant_id == token.user_id)
        .first()
    )
    if not order:
        raise MerchantAPIError(BAD_REQUEST_ERROR, f"Payment {payment_id} not found", status_code=404)
    return order


def get_payment(db: Session, token: ApiToken, payment_id: str) -> Dict:
    order = _order_by_payment(db, token, payment_id)
    return {
        "id": order.payment_id,
        "entity": "payment",
        "amount": order.amount,
        "currency": order.currency,
        "status": "captured" if order.status == OrderStatus.PAID else order.status,
        "order_id": order.order_id,
        "method": order.payment_method or "upi",
        "description": (order.notes or {}).get("description"),
        "email": order.customer_email,
        "contact": order.customer_phone,
        "created_at": unix_seconds(order.created_at),
    }


def create_refund(db: Session, token: ApiToken, payment_id: str, amount: Any = None,
                  notes: Optional[dict] = None) -> Dict:
    """Remboursement déclaratif: seule la commande change d'état, aucun mouvement de solde."""
    order = _order_by_payment(db, token, payment_id)
    if order.status != OrderStatus.PAID:
        raise MerchantAPIError(BAD_REQUEST_ERROR, "Refund can only be initiated for captured payments")

    refund_amount = order.amount
    if amount is not None:
        refund_amount = _validate_paise(amount)
        if refund_amount > order.amount:
            raise MerchantAPIError(
                BAD_REQUEST_ERROR, "Refund amount cannot exceed the payment amount", field="amount",
            )

    order.status = OrderStatus.REFUNDED
    order.refund_id = generate_refund_id()
    order.refund_amount = refund_amount
    order.refunded_at = utcnow()
    db.commit()
    logger.info(f"↩️ Remboursement {order.refund_id} ({refund_amount} paise) sur {payment_id}")

    return {
        "id": order.refund_id,
        "entity": "refund",
        "amount": refund_amount,
        "currency": order.currency,
        "payment_id": payment_id,
        "notes": notes or {},
        "status": "processed",
        "created_at": unix_seconds(order.refunded_at),
    }


# ==================== VERSEMENTS ====================

def serialize_payout(payout: PayoutRequest, detailed: bool = True) -> Dict:
    bank_account = None
    if payout.method == "bank":
        bank_account = {
            "account_number": mask_account_number(payout.account_number),
            "ifsc_code": payout.ifsc_code,
            "account_holder_name": payout.account_holder_name,
        }
        if detailed:
            bank_account["bank_name"] = payout.bank_name

    data = {
        "id": payout.payout_id or str(payout.id),
        "entity": "payout",
        "amount": rupees_to_paise(payout.amount),
        "currency": "INR",
        "method": payout.method,
        "status": payout.status,
        "bank_account": bank_account,
        "upi": {"upi_id": payout.upi_id} if payout.method == "upi" else None,
        "created_at": unix_seconds(payout.created_at),
    }
    if detailed:
        data.update({
            "notes": payout.notes or {},
            "failure_reason": payout.rejection_reason,
            "transaction_id": payout.transaction_id,
            "approved_at": unix_seconds(payout.approved_at) if payout.approved_at else None,
            "completed_at": unix_seconds(payout.completed_at) if payout.completed_at else None,
        })
    return data


def create_payout(db: Session, token: ApiToken, amount: Any, method: Optional[str],
                  currency: str = "INR", bank_account: Optional[dict] = None,
                  upi: Optional[dict] = None, notes: Optional[dict] = None) -> Dict:
    amount = _validate_paise(amount)
    if method not in withdrawal_service.PAYOUT_METHODS:
        raise MerchantAPIError(BAD_REQUEST_ERROR, "Invalid method. Must be 'bank' or 'upi'", field="method")

    bank_account = bank_account or {}
    upi = upi or {}
    if method == "bank" and not (
        bank_account.get("account_number") and bank_account.get("ifsc_code")
        and bank_account.get("account_holder_name")
    ):
        raise MerchantAPIError(
            BAD_REQUEST_ERROR,
            "Bank account details are required: account_number, ifsc_code, account_holder_name",
            field="bank_account",
        )
    if method == "upi" and not upi.get("upi_id"):
        raise MerchantAPIError(BAD_REQUEST_ERROR, "UPI ID is required", field="upi")

    rupees = paise_to_rupees(amount)
    try:
        payout = withdrawal_service.create_payout_request(
            db, token.user_id, rupees, method,
            account_number=bank_account.get("account_number"),
            ifsc_code=bank_account.get("ifsc_code"),
            account_holder_name=bank_account.get("account_holder_name"),
            bank_name=bank_account.get("bank_name"),
            upi_id=upi.get("upi_id"),
            notes=notes,
            source="api",
            api_key_id=token.key_id,
        )
    except InsufficientBalanceError as e:
        raise MerchantAPIError(
            INSUFFICIENT_BALANCE,
            f"Insufficient balance. Available: ₹{to_decimal(e.balance)}, Required: ₹{rupees}",
        )
    except PaymentError as e:
        if e.status_code == 404:
            raise MerchantAPIError(NOT_FOUND_ERROR, "Merchant account not found", status_code=404)
        raise MerchantAPIError(BAD_REQUEST_ERROR, e.message, field=e.extra.get("field"))

    return {
        **serialize_payout(payout),
        "amount": amount,
        "currency": currency or "INR",
        "message": "Payout request submitted for admin approval",
    }


def _vendor_payout(db: Session, token: ApiToken, payout_id: str) -> PayoutRequest:
    try:
        return withdrawal_service.get_vendor_payout(db, token.user_id, payout_id)
    except PaymentError:
        raise MerchantAPIError(NOT_FOUND_ERROR, "Payout not found", status_code=404)


def get_payout(db: Session, token: ApiToken, payout_id: str) -> Dict:
    return serialize_payout(_vendor_payout(db, token, payout_id))


def list_payouts(db: Session, token: ApiToken, status: Optional[str] = None,
                 count: int = 10, skip: int = 0) -> Dict:
    limit = min(max(int(count or 10), 1), MAX_PAGE_SIZE)
    page = withdrawal_service.list_vendor_payouts(
        db, token.user_id, status=status, limit=limit, offset=max(int(skip or 0), 0),
    )
    items = [serialize_payout(payout, detailed=False) for payout in page["items"]]
    return {"entity": "collection", "count": len(items), "total": page["total"], "items": items}


def cancel_payout(db: Session, token: ApiToken, payout_id: str) -> Dict:
    payout = _vendor_payout(db, token, payout_id)
    try:
        payout = withdrawal_service.cancel_payout(db, payout)
    except PaymentError as e:
        raise MerchantAPIError(BAD_REQUEST_ERROR, e.message)
    return {
        "id": payout.payout_id or str(payout.id),
        "entity": "payout",
        "status": payout.status,
        "message": "Payout cancelled successfully",
    }


def get_balance(db: Session, token: ApiToken) -> Dict:
    user = db.query(User).filter(User.id == token.user_id).first()
    if not user:
        raise MerchantAPIError(NOT_FOUND_ERROR, "Account not found", status_code=404)
    balance = to_decimal(user.balance or 0)
    return {
        "entity": "balance",
        "balance": rupees_to_paise(balance),
        "currency": "INR",
        "balance_formatted": f"₹{balance:.2f}",
    }


def connection_test(db: Session, token: ApiToken) -> Dict:
    user = db.query(User).filter(User.id == token.user_id).first()
    return {
        "success": True,
        "message": "API connection successful!",
        "user": {
            "email": user.email if user else None,
            "mode": token.mode,
            "keyId": token.key_id[:15] + "...",
        },
        "timestamp": utcnow().isoformat() + "Z",
    }
