"""
SERVICE DE PAIEMENT - création de commandes et crédit après vérification

Aucun solde n'est modifié avant qu'une signature, un hash ou le statut
distant du fournisseur n'ait confirmé le paiement. Le crédit lui-même passe
par ledger_service.credit_once (insertion unique par (compte, paiement)).
"""
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import json
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from paywallet.config import settings
from paywallet.exceptions import ConfigurationError, GatewayError, NotFoundError, PaymentError
from paywallet.models.admin_models import AdminLog
from paywallet.models.gateway_models import GatewaySettings
from paywallet.models.order_models import Order, OrderStatus
from paywallet.models.receivable_models import PaymentLink, QRCode, LinkStatus, QRStatus
from paywallet.models.transaction_models import (
    Transaction, TransactionCategory, TransactionStatus, TransactionType,
)
from paywallet.models.user_models import User
from paywallet.services import gateway_registry
from paywallet.services.gateway_registry import GatewayConfig
from paywallet.services.gateways import (
    CashfreeGateway, NormalizedOrder, OrderMetadata, PayUGateway, RazorpayGateway,
    Rejected, VerifiedPayment, get_gateway,
)
from paywallet.services.ledger_service import credit_once, paise_to_rupees, to_decimal
from paywallet.utils.clock import utcnow

logger = logging.getLogger(__name__)

GATEWAY_LABELS = {"razorpay": "Razorpay", "payu": "PayU", "cashfree": "Cashfree"}


# ==================== CRÉATION DE COMMANDE ====================

def create_gateway_order(db: Session, amount_rupees: Any, metadata: OrderMetadata) -> NormalizedOrder:
    """
    Créer la commande chez la passerelle active.

    Sans passerelle active: identifiants Razorpay du .env. En cas d'échec de
    Razorpay, un seul nouvel essai avec les identifiants .env s'ils diffèrent.
    Jamais de bascule vers un autre fournisseur.
    """
    amount = to_decimal(amount_rupees)
    try:
        config = gateway_registry.get_active_gateway_settings(db)
    except ConfigurationError as e:
        logger.warning(f"⚠️ Aucune passerelle active, repli Razorpay .env: {e.message}")
        config = gateway_registry.razorpay_env_config()
        if config is None:
            raise ConfigurationError(
                "No payment gateway configured. Please configure one in admin settings "
                "or set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET environment variables."
            )

    try:
        return get_gateway(config).create_order(amount, metadata)
    except GatewayError as primary_error:
        logger.warning(f"⚠️ Passerelle {config.gateway} en échec: {primary_error.message}")

        env_config = gateway_registry.razorpay_env_config()
        if (
            config.gateway == "razorpay"
            and env_config is not None
            and (env_config.key_id, env_config.key_secret) != (config.key_id, config.key_secret)
        ):
            logger.info("🔄 Nouvel essai Razorpay avec les identifiants .env")
            try:
                return RazorpayGateway(env_config).create_order(amount, metadata)
            except GatewayError as env_error:
                logger.warning(f"⚠️ Repli Razorpay .env aussi en échec: {env_error.message}")

        label = config.label or config.gateway
        raise GatewayError(
            f"Payment failed: {label} order creation failed. Please verify your {label} "
            f"credentials in Admin > Payment Gateway Settings. Error: {primary_error.message}",
            gateway=config.gateway,
        )


# ==================== CRÉDITS ====================

def credit_deposit(db: Session, user_id: int, payment_id: str, amount: Any, via: str) -> bool:
    return credit_once(
        db, user_id, payment_id, amount,
        description=f"Wallet Deposit via {GATEWAY_LABELS.get(via, via)}",
        category=TransactionCategory.DEPOSIT,
        method=via,
    )


def credit_payment_link(db: Session, link: PaymentLink, payment_id: str, via: str) -> bool:
    if link.status == LinkStatus.PAID:
        return False
    credited = credit_once(
        db, link.user_id, payment_id, link.amount,
        description=f"Payment from {link.customer_name} via {GATEWAY_LABELS.get(via, via)}",
        category=TransactionCategory.PAYMENT_LINK,
        method=via,
        customer_name=link.customer_name,
        reference_id=link.link_id,
    )
    if credited:
        link.status = LinkStatus.PAID
        link.provider_payment_id = payment_id
        link.paid_at = utcnow()
    return credited


def credit_api_order(db: Session, order: Order, payment_id: str, via: str,
                     signature: Optional[str] = None, method: Optional[str] = None) -> bool:
    """Créditer le marchand d'une commande API (montant en paise)."""
    if order.status == OrderStatus.PAID:
        return False
    credited = credit_once(
        db, order.merchant_id, payment_id, paise_to_rupees(order.amount),
        description=f"API order payment {order.order_id} via {GATEWAY_LABELS.get(via, via)}",
        category=TransactionCategory.API_ORDER,
        method=via,
        customer_name=order.customer_name,
        reference_id=order.order_id,
    )
    if credited:
        order.status = OrderStatus.PAID
        order.payment_id = payment_id
        order.payment_status = "captured"
        order.amount_paid = order.amount
        order.paid_at = utcnow()
        if method:
            order.payment_method = method
        if signature:
            order.signature = signature
            order.signature_verified = True
    return credited


def qr_credit_amount(qr: QRCode, confirmed: Any) -> Any:
    """Montant à créditer: celui confirmé par le fournisseur pour un QR statique."""
    if qr.is_static or qr.amount is None:
        return confirmed
    return qr.amount


def credit_qr(db: Session, qr: QRCode, payment_id: str, amount: Any,
              payer: Optional[Dict[str, str]], via: str) -> bool:
    if not qr.is_static and qr.status == QRStatus.PAID:
        return False
    payer = payer or {}
    payer_name = payer.get("name") or "Customer"
    credited = credit_once(
        db, qr.user_id, payment_id, amount,
        description=f"QR Payment from {payer_name} via {GATEWAY_LABELS.get(via, via)}",
        category=TransactionCategory.QR,
        method="qr",
        customer_name=payer_name,
        reference_id=qr.qr_id,
    )
    if credited:
        if not qr.is_static:
            qr.status = QRStatus.PAID
        qr.provider_payment_id = payment_id
        qr.paid_at = utcnow()
        qr.paid_by_name = payer_name
        qr.paid_by_email = payer.get("email") or ""
        qr.paid_by_phone = payer.get("phone") or ""
    return credited


# ==================== VÉRIFICATION PAR SIGNATURE ====================

def verify_signature_payment(db: Session, order_id: str, payment_id: str, signature: str,
                             gateway_hint: Optional[str] = None) -> VerifiedPayment:
    """
    Vérifier HMAC-SHA256(order_id|payment_id) avec le secret de la passerelle
    résolue. Lève PaymentError("Invalid signature") sans rien modifier.
    """
    config = gateway_registry.resolve_gateway_for_verification(db, gateway_hint)
    result = RazorpayGateway(config).verify({
        "order_id": order_id,
        "payment_id": payment_id,
        "signature": signature,
    })
    if isinstance(result, Rejected):
        raise PaymentError(result.reason)
    return VerifiedPayment(
        gateway=gateway_hint or config.gateway,
        payment_id=result.payment_id,
        order_id=result.order_id,
        raw=result.raw,
    )


def verify_deposit(db: Session, user_id: int, amount: Any, order_id: str, payment_id: str,
                   signature: str, gateway_hint: Optional[str] = None) -> bool:
    verified = verify_signature_payment(db, order_id, payment_id, signature, gateway_hint)
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError("User not found")
    credited = credit_deposit(db, user_id, verified.payment_id, amount, via=verified.gateway)
    db.commit()
    return credited


def find_checkout_target(db: Session, link_id: str):
    """Lien de paiement, sinon commande API portant le même identifiant."""
    link = db.query(PaymentLink).filter(PaymentLink.link_id == link_id).first()
    if link:
        return link, None
    order = db.query(Order).filter(Order.order_id == link_id).first()
    return None, order


def verify_checkout(db: Session, link_id: str, order_id: str, payment_id: str,
                    signature: str, gateway_hint: Optional[str] = None) -> bool:
    link, api_order = find_checkout_target(db, link_id)
    if not link and not api_order:
        raise NotFoundError("Payment link not found")

    verified = verify_signature_payment(db, order_id, payment_id, signature, gateway_hint)
    if link:
        credited = credit_payment_link(db, link, verified.payment_id, via=verified.gateway)
    else:
        credited = credit_api_order(db, api_order, verified.payment_id, via=verified.gateway,
                                    signature=signature)
    db.commit()
    return credited


def verify_qr(db: Session, qr_id: str, order_id: str, payment_id: str, signature: str,
              gateway_hint: Optional[str] = None, amount: Any = None,
              payer: Optional[Dict[str, str]] = None) -> bool:
    qr = db.query(QRCode).filter(QRCode.qr_id == qr_id).first()
    if not qr:
        raise NotFoundError("QR Code not found")

    if qr.is_static:
        credited_amount = to_decimal(amount or 0)
    else:
        credited_amount = to_decimal(qr.amount or amount or 0)
    if credited_amount <= 0:
        raise PaymentError("Invalid payment amount")

    verified = verify_signature_payment(db, order_id, payment_id, signature, gateway_hint)
    credited = credit_qr(db, qr, verified.payment_id, credited_amount, payer, via=verified.gateway)
    db.commit()
    return credited


# ==================== CALLBACKS PAYU ====================

def _payu_config(db: Session, key: Optional[str]) -> GatewayConfig:
    row = None
    if key:
        row = (
            db.query(GatewaySettings)
            .filter(GatewaySettings.gateway == "payu", GatewaySettings.key_id == key,
                    GatewaySettings.is_enabled.is_(True))
            .first()
        )
    if not row:
        row = (
            db.query(GatewaySettings)
            .filter(GatewaySettings.gateway == "payu", GatewaySettings.is_enabled.is_(True))
            .first()
        )
    if not row or not (row.key_secret or "").strip():
        raise ConfigurationError("PayU credentials are not configured for callback verification")
    return GatewayConfig.from_row(row)


def _parse_user_id(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def handle_payu_callback(db: Session, form: Dict[str, Any]) -> str:
    """
    Vérifier le hash inverse PayU puis créditer selon le flux porté par udf3.
    Retourne l'URL de redirection vers le frontend.
    """
    frontend = settings.FRONTEND_URL
    config = _payu_config(db, form.get("key"))
    result = PayUGateway(config).verify(form)

    if isinstance(result, Rejected) and result.reason == "payment_failed":
        logger.info(f"❌ Paiement PayU échoué txnid={form.get('txnid')} status={result.status}")
        return handle_payu_failure(form)
    if isinstance(result, Rejected):
        logger.warning(f"🚫 Callback PayU refusé ({result.reason}) txnid={form.get('txnid')}")
        return f"{frontend}/payment/failed?reason=hash_mismatch"

    payment_id = result.payment_id
    flow = form.get("udf3") or "deposit"
    target_id = form.get("udf2") or ""
    amount = result.amount

    if flow == "deposit" and form.get("udf1"):
        user_id = _parse_user_id(form.get("udf1"))
        if user_id and db.query(User.id).filter(User.id == user_id).first():
            credit_deposit(db, user_id, payment_id, amount, via="payu")
            _audit(db, "payu_deposit_callback", {"txnid": form.get("txnid"), "amount": str(amount)},
                   user_id=user_id, transaction_id=payment_id)
            db.commit()
        else:
            logger.warning(f"⚠️ Callback PayU: utilisateur introuvable udf1={form.get('udf1')}")
        return f"{frontend}/user/deposit-money?{urlencode({'status': 'success', 'amount': form.get('amount', '')})}"

    if flow == "checkout" and target_id:
        link, api_order = find_checkout_target(db, target_id)
        if link:
            credit_payment_link(db, link, payment_id, via="payu")
        elif api_order:
            credit_api_order(db, api_order, payment_id, via="payu")
        else:
            logger.warning(f"⚠️ Callback PayU: lien {target_id} introuvable")
        db.commit()
        return f"{frontend}/payment/success?{urlencode({'linkId': target_id})}"

    if flow == "qr" and target_id:
        qr = db.query(QRCode).filter(QRCode.qr_id == target_id).first()
        if qr:
            payer = {"name": form.get("firstname") or "Customer", "email": form.get("email") or ""}
            credit_qr(db, qr, payment_id, qr_credit_amount(qr, amount), payer, via="payu")
            db.commit()
        else:
            logger.warning(f"⚠️ Callback PayU: QR {target_id} introuvable")
        return f"{frontend}/payment/success?{urlencode({'qrId': target_id})}"

    return f"{frontend}/user/deposit-money?status=success"


def handle_payu_failure(form: Dict[str, Any]) -> str:
    frontend = settings.FRONTEND_URL
    flow = form.get("udf3")
    target_id = form.get("udf2")
    if flow == "checkout" and target_id:
        return f"{frontend}/payment/failed?{urlencode({'linkId': target_id})}"
    if flow == "qr" and target_id:
        return f"{frontend}/payment/failed?{urlencode({'qrId': target_id})}"
    return f"{frontend}/user/deposit-money?status=failed"


# ==================== RETOUR CASHFREE ====================

def verify_cashfree_return(db: Session, flow: str, order_id: str,
                           link_id: Optional[str] = None, qr_id: Optional[str] = None) -> str:
    """Interroger Cashfree et créditer uniquement si la commande est PAID."""
    if not flow or not order_id:
        raise PaymentError("flow and orderId are required")

    row = (
        db.query(GatewaySettings)
        .filter(GatewaySettings.gateway == "cashfree", GatewaySettings.is_enabled.is_(True))
        .first()
    )
    if not row or not row.has_credentials:
        raise ConfigurationError("Cashfree credentials are not configured")

    result = CashfreeGateway(GatewayConfig.from_row(row)).verify({"order_id": order_id})
    if isinstance(result, Rejected):
        raise PaymentError("Payment is not completed yet", extra={"status": result.status})

    amount = result.amount

    if flow == "deposit":
        customer_id = (result.raw.get("customer_details") or {}).get("customer_id")
        user_id = _parse_user_id(customer_id)
        if not user_id or not db.query(User.id).filter(User.id == user_id).first():
            raise PaymentError("Unable to resolve user for deposit")
        credit_deposit(db, user_id, order_id, amount, via="cashfree")
        db.commit()
        return "Deposit payment verified"

    if flow == "checkout":
        link = (
            db.query(PaymentLink)
            .filter(or_(PaymentLink.link_id == link_id, PaymentLink.provider_order_id == order_id))
            .first()
        )
        if link:
            credit_payment_link(db, link, order_id, via="cashfree")
            db.commit()
            return "Checkout payment verified"

        api_order = db.query(Order).filter(Order.order_id == link_id).first() if link_id else None
        if not api_order:
            raise NotFoundError("Payment order not found")
        credit_api_order(db, api_order, order_id, via="cashfree")
        db.commit()
        return "Checkout payment verified"

    if flow == "qr":
        qr = (
            db.query(QRCode)
            .filter(or_(QRCode.qr_id == qr_id, QRCode.provider_order_id == order_id))
            .first()
        )
        if not qr:
            raise NotFoundError("QR order not found")
        credit_qr(db, qr, order_id, qr_credit_amount(qr, amount), {"name": "Customer"}, via="cashfree")
        db.commit()
        return "QR payment verified"

    raise PaymentError("Unsupported flow")


# ==================== WEBHOOK RAZORPAY ====================

def handle_razorpay_webhook(db: Session, raw_body: bytes, signature: Optional[str]) -> Dict[str, str]:
    """
    Webhook Razorpay signé (HMAC-SHA256 du corps brut).
    payment_link.paid, qr_code.credited et qr_code.closed sont traités.
    """
    secret = settings.RAZORPAY_WEBHOOK_SECRET
    if not secret:
        raise ConfigurationError("Razorpay webhook secret is not configured")
    if not RazorpayGateway.verify_webhook_signature(raw_body, signature, secret):
        logger.warning("🚫 Webhook Razorpay: signature invalide")
        raise PaymentError("Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise PaymentError("Invalid webhook payload")

    event_name = event.get("event")
    payload = event.get("payload") or {}
    logger.info(f"📨 Webhook Razorpay: {event_name}")

    if event_name == "payment_link.paid":
        status = _complete_payment_link_transaction(db, payload)
    elif event_name == "qr_code.credited":
        status = _credit_qr_from_webhook(db, payload)
    elif event_name == "qr_code.closed":
        status = _close_qr_from_webhook(db, payload)
    else:
        return {"status": "ignored"}

    _audit(db, "razorpay_webhook_processed", {"event": event_name, "status": status})
    db.commit()
    return {"status": status}


def _entity(payload: Dict, name: str) -> Dict:
    return ((payload.get(name) or {}).get("entity")) or {}


def _complete_payment_link_transaction(db: Session, payload: Dict) -> str:
    link_id = _entity(payload, "payment_link").get("id")
    amount = paise_to_rupees(_entity(payload, "payment").get("amount") or 0)

    entry = (
        db.query(Transaction)
        .filter(Transaction.transaction_id == link_id, Transaction.type == TransactionType.CREDIT)
        .first()
    ) if link_id else None
    if not entry:
        return "transaction not found"

    # Passage Pending -> Completed conditionnel: un seul webhook gagne
    updated = (
        db.query(Transaction)
        .filter(Transaction.id == entry.id, Transaction.status == TransactionStatus.PENDING)
        .update({Transaction.status: TransactionStatus.COMPLETED}, synchronize_session=False)
    )
    if not updated:
        return "already processed"

    db.query(User).filter(User.id == entry.user_id).update(
        {User.balance: User.balance + amount}, synchronize_session=False
    )
    logger.info(f"💰 Lien de paiement {link_id} payé: +{amount} ₹ user={entry.user_id}")
    return "ok"


def _credit_qr_from_webhook(db: Session, payload: Dict) -> str:
    qr_entity = _entity(payload, "qr_code")
    payment_entity = _entity(payload, "payment")
    if not qr_entity or not payment_entity:
        return "missing_payload"

    notes = qr_entity.get("notes") or {}
    conditions = []
    if qr_entity.get("id"):
        conditions.append(QRCode.gateway_payment_link_id == qr_entity["id"])
    if notes.get("qrId"):
        conditions.append(QRCode.qr_id == notes["qrId"])
    qr = db.query(QRCode).filter(or_(*conditions)).first() if conditions else None
    if not qr:
        logger.warning(f"⚠️ Webhook QR: QR introuvable {qr_entity.get('id')} / {notes.get('qrId')}")
        return "qr_not_found"

    payer = {
        "name": (payment_entity.get("notes") or {}).get("name") or payment_entity.get("description") or "UPI Scan",
        "email": payment_entity.get("email") or "",
        "phone": payment_entity.get("contact") or "",
    }
    credited = credit_qr(
        db, qr, payment_entity.get("id"), paise_to_rupees(payment_entity.get("amount") or 0),
        payer, via="razorpay",
    )
    return "ok" if credited else "already_processed"


def _close_qr_from_webhook(db: Session, payload: Dict) -> str:
    qr_id = (_entity(payload, "qr_code").get("notes") or {}).get("qrId")
    if qr_id:
        db.query(QRCode).filter(QRCode.qr_id == qr_id, QRCode.status == QRStatus.ACTIVE).update(
            {QRCode.status: QRStatus.EXPIRED}, synchronize_session=False
        )
    return "ok"


def _audit(db: Session, action: str, details: Dict, user_id: Optional[int] = None,
           transaction_id: Optional[str] = None):
    db.add(AdminLog.create_audit_log(
        admin_id=0,
        action=action,
        details=details,
        related_user_id=user_id,
        related_transaction_id=transaction_id,
    ))
