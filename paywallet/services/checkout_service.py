"""
SERVICE CHECKOUT - liens de paiement et page de paiement publique

Un identifiant de checkout désigne un lien de paiement ou, à défaut, une
commande créée par l'API marchand.
"""
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from paywallet.config import settings
from paywallet.exceptions import ConfigurationError, NotFoundError, PaymentError
from paywallet.models.order_models import Order, OrderStatus
from paywallet.models.receivable_models import LinkStatus, PaymentLink
from paywallet.models.transaction_models import (
    Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from paywallet.models.user_models import User
from paywallet.services import gateway_registry
from paywallet.services.gateway_registry import GatewayConfig
from paywallet.services.gateways import OrderMetadata, RazorpayGateway
from paywallet.services.ledger_service import paise_to_rupees, to_decimal
from paywallet.services.payment_service import create_gateway_order, find_checkout_target
from paywallet.utils.clock import utcnow
from paywallet.utils.ids import generate_link_id

logger = logging.getLogger(__name__)

INVALID_ORDER_STATUSES = (OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.REFUNDED)


def checkout_url(link_id: str) -> str:
    return f"{settings.FRONTEND_URL}/pay/{link_id}"


def _positive_amount(amount: Any):
    try:
        value = to_decimal(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise PaymentError("Invalid amount")
    if value <= 0:
        raise PaymentError("Invalid amount")
    return value


def generate_link(db: Session, user_id: int, name: str, email: str, amount: Any,
                  description: Optional[str] = None, due_date: Optional[datetime] = None) -> Dict:
    """Créer un lien de paiement en attente et retourner son URL de checkout."""
    if not name or not email or not amount:
        raise PaymentError("All fields required")

    sender = db.query(User).filter(User.id == user_id).first()
    if not sender:
        raise NotFoundError("User not found")

    link = PaymentLink(
        link_id=generate_link_id(),
        user_id=user_id,
        customer_name=name,
        customer_email=email,
        amount=_positive_amount(amount),
        description=description or f"Payment request from {sender.full_name}",
        due_date=due_date,
        status=LinkStatus.PENDING,
    )
    db.add(link)
    db.commit()
    logger.info(f"🔗 Lien de paiement {link.link_id} créé ({link.amount} ₹) user={user_id}")

    return {
        "success": True,
        "message": "Payment link generated successfully",
        "paymentLink": checkout_url(link.link_id),
        "linkId": link.link_id,
    }


def _order_view(order: Order, merchant: Optional[User]) -> Dict:
    notes = order.notes or {}
    return {
        "linkId": order.order_id,
        "amount": float(paise_to_rupees(order.amount)),
        "description": notes.get("description") or f"Order payment {order.order_id}",
        "customerName": order.customer_name or "Customer",
        "customerEmail": order.customer_email or "customer@example.com",
        "merchant": merchant.full_name if merchant else "Merchant",
        "merchantEmail": merchant.email if merchant else None,
        "dueDate": order.expired_at.isoformat() if order.expired_at else None,
    }


def get_checkout(db: Session, link_id: str) -> Dict:
    """
    Données publiques de la page de paiement.
    Un lien dont l'échéance est passée est marqué expiré à la lecture.
    """
    link, api_order = find_checkout_target(db, link_id)

    if not link:
        if not api_order:
            raise NotFoundError("Payment link not found")
        if api_order.status == OrderStatus.PAID:
            raise PaymentError("Payment already completed", extra={"status": "paid"})
        if api_order.status in (OrderStatus.EXPIRED, OrderStatus.REFUNDED):
            raise PaymentError("Payment link is no longer valid", extra={"status": api_order.status})
        merchant = db.query(User).filter(User.id == api_order.merchant_id).first()
        return {"success": True, "paymentLink": _order_view(api_order, merchant)}

    if link.status == LinkStatus.PAID:
        raise PaymentError("Payment already completed", extra={"status": "paid"})
    if link.status in (LinkStatus.EXPIRED, LinkStatus.CANCELLED):
        raise PaymentError("Payment link is no longer valid", extra={"status": link.status})

    if link.due_date and link.due_date < utcnow():
        link.status = LinkStatus.EXPIRED
        db.commit()
        logger.info(f"⌛ Lien {link.link_id} expiré (échéance dépassée)")
        raise PaymentError("Payment link has expired", extra={"status": "expired"})

    merchant = link.user
    return {
        "success": True,
        "paymentLink": {
            "linkId": link.link_id,
            "amount": float(link.amount),
            "description": link.description,
            "customerName": link.customer_name,
            "customerEmail": link.customer_email,
            "merchant": merchant.full_name if merchant else "Merchant",
            "merchantEmail": merchant.email if merchant else None,
            "dueDate": link.due_date.isoformat() if link.due_date else None,
        },
    }


def create_checkout_order(db: Session, link_id: str) -> Dict:
    """Créer la commande fournisseur pour un lien ou une commande API."""
    link, api_order = find_checkout_target(db, link_id)
    backend = settings.BACKEND_URL
    callbacks = {
        "surl": f"{backend}/api/payment/payu/success",
        "furl": f"{backend}/api/payment/payu/failure",
    }

    if link:
        if link.status != LinkStatus.PENDING:
            raise PaymentError("Payment link is no longer valid")

        result = create_gateway_order(db, link.amount, OrderMetadata(
            flow_type="checkout",
            receipt=f"checkout_{link_id}",
            productinfo=link.description or "Payment",
            firstname=link.customer_name or "Customer",
            email=link.customer_email or "customer@example.com",
            link_id=link_id,
            udf1=str(link.user_id),
            udf2=link_id,
            udf3="checkout",
            notes={"linkId": link_id, "customerEmail": link.customer_email},
            **callbacks,
        ))
        if result.gateway in ("razorpay", "cashfree") and result.provider_order_id:
            link.provider_order_id = result.provider_order_id
            db.commit()
        return {"success": True, **result}

    if not api_order:
        raise NotFoundError("Payment link not found")
    if api_order.status in INVALID_ORDER_STATUSES:
        raise PaymentError("Payment link is no longer valid")

    notes = dict(api_order.notes or {})
    result = create_gateway_order(db, paise_to_rupees(api_order.amount), OrderMetadata(
        flow_type="checkout",
        receipt=api_order.receipt or f"checkout_{link_id}",
        productinfo=notes.get("description") or "Order Payment",
        firstname=api_order.customer_name or "Customer",
        email=api_order.customer_email or "customer@example.com",
        link_id=link_id,
        udf1=str(api_order.merchant_id),
        udf2=link_id,
        udf3="checkout",
        notes={**notes, "linkId": link_id, "customerEmail": api_order.customer_email},
        **callbacks,
    ))

    if result.gateway == "razorpay" and result.provider_order_id:
        notes["razorpayOrderId"] = result.provider_order_id
    elif result.gateway == "cashfree" and result.provider_order_id:
        notes["cashfreeOrderId"] = result.provider_order_id
    # Nouveau dict: la colonne JSON n'est pas mutable-tracked
    api_order.notes = notes
    api_order.status = OrderStatus.ATTEMPTED
    api_order.attempts = (api_order.attempts or 0) + 1
    db.commit()
    return {"success": True, **result}


# ==================== DEMANDE D'ARGENT ====================

def _razorpay_config(db: Session) -> GatewayConfig:
    env_config = gateway_registry.razorpay_env_config()
    if env_config:
        return env_config
    try:
        config = gateway_registry.get_active_gateway_settings(db)
    except ConfigurationError:
        config = None
    if config is None or config.gateway != "razorpay":
        raise ConfigurationError("Razorpay is not configured for payment requests")
    return config


def request_money(db: Session, user_id: int, name: str, email: str, amount: Any,
                  description: Optional[str] = None) -> Dict:
    """
    Lien de paiement Razorpay hébergé + écriture Credit en attente.
    Le solde n'est crédité qu'à la réception du webhook payment_link.paid.
    """
    if not name or not email or not amount:
        raise PaymentError("All fields required")
    value = _positive_amount(amount)

    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError("User not found")

    label = description or f"Payment from {name}"
    link = RazorpayGateway(_razorpay_config(db)).create_payment_link(
        value, label,
        customer={"name": name, "email": email},
        callback_url=f"{settings.FRONTEND_URL}/user/transactions",
    )

    db.add(Transaction(
        user_id=user_id,
        transaction_id=link.get("id"),
        description=label,
        type=TransactionType.CREDIT,
        amount=value,
        status=TransactionStatus.PENDING,
        category=TransactionCategory.PAYMENT_LINK,
        method="razorpay",
        customer_name=name,
        reference_id=link.get("id"),
    ))
    db.commit()
    logger.info(f"📨 Demande d'argent {link.get('id')} ({value} ₹) user={user_id}")

    return {
        "success": True,
        "message": "Payment request sent successfully",
        "paymentLink": link.get("short_url"),
    }
