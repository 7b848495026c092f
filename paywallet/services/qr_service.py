"""
SERVICE QR - QR codes dynamiques (montant fixe, expiration) et statiques
(montant libre, un par utilisateur)
"""
from datetime import timedelta
from typing import Any, Dict, Optional
import logging

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from paywallet.config import settings
from paywallet.exceptions import ConfigurationError, GatewayError, NotFoundError, PaymentError
from paywallet.models.receivable_models import QRCode, QRStatus
from paywallet.models.user_models import User
from paywallet.services import gateway_registry
from paywallet.services.gateways import OrderMetadata, get_gateway
from paywallet.services.ledger_service import to_decimal
from paywallet.services.payment_service import create_gateway_order
from paywallet.utils.clock import utcnow
from paywallet.utils.ids import attempt_suffix, generate_qr_id

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_MINUTES = 15
USER_LIST_LIMIT = 50


def build_qr_payment_url(qr_id: str, gateway_payment_url: Optional[str] = None) -> Dict:
    """Valeur encodée dans le QR: lien fournisseur direct, sinon checkout hébergé."""
    hosted = f"{settings.FRONTEND_URL}/qr/{qr_id}"
    if gateway_payment_url:
        return {
            "qrUrl": gateway_payment_url,
            "paymentUri": gateway_payment_url,
            "paymentMode": "gateway-direct",
            "hostedCheckoutUrl": hosted,
            "gatewayPaymentUrl": gateway_payment_url,
        }
    return {
        "qrUrl": hosted,
        "paymentUri": hosted,
        "paymentMode": "hosted",
        "hostedCheckoutUrl": hosted,
    }


def serialize_qr(qr: QRCode) -> Dict:
    return {
        "qrId": qr.qr_id,
        "userId": qr.user_id,
        "name": qr.name,
        "isStatic": bool(qr.is_static),
        "amount": float(qr.amount) if qr.amount is not None else None,
        "description": qr.description,
        "expiryMinutes": qr.expiry_minutes,
        "expiresAt": qr.expires_at.isoformat() if qr.expires_at else None,
        "status": qr.status,
        "paidAt": qr.paid_at.isoformat() if qr.paid_at else None,
        "paidBy": {
            "name": qr.paid_by_name or "",
            "email": qr.paid_by_email or "",
            "phone": qr.paid_by_phone or "",
        },
        "gateway": qr.gateway,
        "gatewayQrImageUrl": qr.gateway_qr_image_url,
        "gatewayPaymentUrl": qr.gateway_payment_url,
        "createdAt": qr.created_at.isoformat() if qr.created_at else None,
    }


def _native_upi_qr(db: Session, qr: QRCode) -> Optional[Dict]:
    """
    QR UPI natif auprès de la passerelle active, au mieux: toute erreur
    fournisseur laisse le QR sur le checkout hébergé.
    """
    try:
        config = gateway_registry.get_active_gateway_settings(db)
    except ConfigurationError:
        return None

    configs = [config]
    env_config = gateway_registry.razorpay_env_config()
    if (
        config.gateway == "razorpay"
        and env_config is not None
        and (env_config.key_id, env_config.key_secret) != (config.key_id, config.key_secret)
    ):
        configs.append(env_config)

    for candidate in configs:
        try:
            native = get_gateway(candidate).create_upi_qr(
                qr.amount, qr.qr_id, qr.user_id, qr.description, qr.name, qr.expires_at,
            )
        except (GatewayError, ConfigurationError) as e:
            logger.warning(f"⚠️ QR natif {candidate.gateway} ({candidate.source}) indisponible: {e.message}")
            continue
        if native:
            native["gateway"] = candidate.gateway
            return native
    return None


def generate_qr(db: Session, user_id: int, amount: Any, name: Optional[str] = None,
                description: Optional[str] = None, expiry_minutes: Optional[int] = None) -> Dict:
    if not user_id or not amount:
        raise PaymentError("User ID and amount are required")
    try:
        value = to_decimal(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise PaymentError("Invalid amount")
    if value <= 0:
        raise PaymentError("Invalid amount")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")

    minutes = int(expiry_minutes or DEFAULT_EXPIRY_MINUTES)
    qr = QRCode(
        qr_id=generate_qr_id(),
        user_id=user_id,
        name=name or "Payment QR",
        amount=value,
        description=description or "",
        expiry_minutes=minutes,
        expires_at=utcnow() + timedelta(minutes=minutes),
        is_static=False,
        status=QRStatus.ACTIVE,
    )
    db.add(qr)
    db.flush()

    native = _native_upi_qr(db, qr)
    if native:
        qr.gateway = native["gateway"]
        qr.gateway_qr_image_url = native.get("imageUrl")
        qr.gateway_payment_url = native.get("paymentUrl")
        qr.gateway_payment_link_id = native.get("providerId")
    db.commit()
    logger.info(f"🔳 QR {qr.qr_id} créé ({value} ₹, {minutes} min) user={user_id} natif={bool(native)}")

    return {
        "success": True,
        "message": "QR Code generated successfully",
        "qrCode": {
            "qrId": qr.qr_id,
            "amount": float(qr.amount),
            "name": qr.name,
            "expiresAt": qr.expires_at.isoformat(),
            **build_qr_payment_url(qr.qr_id, qr.gateway_payment_url),
            "gatewayPaymentUrl": qr.gateway_payment_url,
            "gatewayQrImageUrl": qr.gateway_qr_image_url,
            "gateway": qr.gateway,
            "isUpiQr": bool(qr.gateway_qr_image_url),
        },
    }


def generate_static_qr(db: Session, user_id: int, name: Optional[str] = None,
                       description: Optional[str] = None) -> Dict:
    if not user_id:
        raise PaymentError("User ID is required")
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError("User not found")

    existing = db.query(QRCode).filter(QRCode.user_id == user_id, QRCode.is_static.is_(True)).first()
    if existing:
        raise PaymentError("You already have a static QR code", extra={"qrCode": serialize_qr(existing)})

    qr = QRCode(
        qr_id=generate_qr_id(static=True),
        user_id=user_id,
        name=name or "Static Payment QR",
        description=description or "Accept any amount",
        is_static=True,
        status=QRStatus.ACTIVE,
    )
    db.add(qr)
    db.commit()
    logger.info(f"🔳 QR statique {qr.qr_id} créé user={user_id}")

    payment = build_qr_payment_url(qr.qr_id)
    return {
        "success": True,
        "message": "Static QR Code generated successfully",
        "qrCode": {
            "qrId": qr.qr_id,
            "name": qr.name,
            "isStatic": True,
            **payment,
            "isUpiQr": False,
        },
    }


def expire_due_qrs(db: Session, user_id: Optional[int] = None) -> int:
    """Passer en expiré les QR dynamiques actifs dont l'échéance est dépassée."""
    query = db.query(QRCode).filter(
        QRCode.is_static.is_(False),
        QRCode.status == QRStatus.ACTIVE,
        QRCode.expires_at < utcnow(),
    )
    if user_id is not None:
        query = query.filter(QRCode.user_id == user_id)
    expired = query.update({QRCode.status: QRStatus.EXPIRED}, synchronize_session=False)
    db.commit()
    return expired


def _stats(query) -> Dict:
    row = query.with_entities(
        func.count(QRCode.id),
        func.sum(case((QRCode.status == QRStatus.ACTIVE, 1), else_=0)),
        func.sum(case((QRCode.status == QRStatus.PAID, 1), else_=0)),
        func.sum(case((QRCode.status == QRStatus.EXPIRED, 1), else_=0)),
        func.sum(case((QRCode.status == QRStatus.PAID, QRCode.amount), else_=0)),
    ).one()
    total, active, paid, expired, total_amount = row
    return {
        "total": total or 0,
        "active": int(active or 0),
        "paid": int(paid or 0),
        "expired": int(expired or 0),
        "totalAmount": float(total_amount or 0),
    }


def list_user_qrs(db: Session, user_id: int) -> Dict:
    expire_due_qrs(db, user_id)

    dynamic = db.query(QRCode).filter(QRCode.user_id == user_id, QRCode.is_static.is_(False))
    qr_codes = dynamic.order_by(QRCode.created_at.desc()).limit(USER_LIST_LIMIT).all()
    static_qr = db.query(QRCode).filter(QRCode.user_id == user_id, QRCode.is_static.is_(True)).first()

    items = []
    for qr in qr_codes:
        payment = build_qr_payment_url(qr.qr_id, qr.gateway_payment_url)
        items.append({
            **serialize_qr(qr),
            **payment,
            "isUpiQr": bool(qr.gateway_qr_image_url) or payment["paymentMode"] == "gateway-direct",
        })

    stats = _stats(dynamic)
    stats.pop("expired")
    return {
        "success": True,
        "qrCodes": items,
        "staticQR": {**serialize_qr(static_qr), **build_qr_payment_url(static_qr.qr_id)} if static_qr else None,
        "stats": stats,
    }


def list_all_qrs(db: Session, status: Optional[str] = None, search: Optional[str] = None,
                 page: int = 1, limit: int = 50) -> Dict:
    """Vue admin paginée de tous les QR codes."""
    query = db.query(QRCode)
    if status and status != "all":
        query = query.filter(QRCode.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(QRCode.qr_id.ilike(pattern), QRCode.name.ilike(pattern)))

    total = query.count()
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    rows = query.order_by(QRCode.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return {
        "success": True,
        "qrCodes": [
            {
                **serialize_qr(qr),
                "userName": qr.user.full_name if qr.user else "N/A",
                "userEmail": qr.user.email if qr.user else "N/A",
                "isUpiQr": bool(qr.gateway_qr_image_url),
            }
            for qr in rows
        ],
        "stats": _stats(db.query(QRCode)),
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        },
    }


def get_qr_checkout(db: Session, qr_id: str) -> Dict:
    qr = db.query(QRCode).filter(QRCode.qr_id == qr_id).first()
    if not qr:
        raise NotFoundError("QR Code not found")

    remaining_seconds = None
    if not qr.is_static:
        if qr.status == QRStatus.ACTIVE and qr.is_past_expiry():
            qr.status = QRStatus.EXPIRED
            db.commit()
        if qr.status == QRStatus.PAID:
            raise PaymentError("Payment already completed", extra={"status": "paid"})
        if qr.status == QRStatus.EXPIRED:
            raise PaymentError("QR Code has expired", extra={"status": "expired"})
        if qr.expires_at:
            remaining_seconds = max(0, int((qr.expires_at - utcnow()).total_seconds()))

    merchant = qr.user
    return {
        "success": True,
        "qrCode": {
            "qrId": qr.qr_id,
            "amount": float(qr.amount) if qr.amount is not None else None,
            "name": qr.name,
            "description": qr.description,
            "merchant": merchant.full_name if merchant else "Merchant",
            "merchantEmail": merchant.email if merchant else None,
            "isStatic": bool(qr.is_static),
            "expiresAt": qr.expires_at.isoformat() if qr.expires_at else None,
            "gatewayQrImageUrl": qr.gateway_qr_image_url,
            "remainingSeconds": remaining_seconds,
        },
    }


def create_qr_order(db: Session, qr_id: str, amount: Any = None, payer_name: Optional[str] = None,
                    payer_email: Optional[str] = None, payer_phone: Optional[str] = None,
                    client_ip: Optional[str] = None, device_info: Optional[str] = None) -> Dict:
    """Commande fournisseur pour un QR, avec txnid/receipt/order id uniques par tentative."""
    qr = db.query(QRCode).filter(QRCode.qr_id == qr_id).first()
    if not qr:
        raise NotFoundError("QR Code not found")

    if not qr.is_static:
        if qr.status == QRStatus.ACTIVE and qr.is_past_expiry():
            qr.status = QRStatus.EXPIRED
            db.commit()
            raise PaymentError("QR Code has expired. Please generate a new QR for payment.")
        if qr.status != QRStatus.ACTIVE:
            raise PaymentError("QR Code is no longer valid. Please generate a new QR for payment.")
        payment_amount = to_decimal(qr.amount)
    else:
        try:
            payment_amount = to_decimal(amount) if amount else None
        except (ArithmeticError, ValueError, TypeError):
            payment_amount = None
        if not payment_amount or payment_amount <= 0:
            raise PaymentError("Please enter a valid amount")
        if qr.status == QRStatus.PAID:
            raise PaymentError(
                "This static QR has already been paid. Please generate a new QR for another payment."
            )

    suffix = attempt_suffix()
    metadata = OrderMetadata(
        flow_type="qr",
        receipt=f"qr_{suffix}",
        txnid=f"TXN_QR_{suffix}",
        order_id=f"CF_QR_{suffix}",
        productinfo=qr.description or "QR Payment",
        firstname=payer_name or "Customer",
        email=payer_email or "customer@example.com",
        phone=payer_phone or "9999999999",
        qr_id=qr_id,
        udf1=str(qr.user_id),
        udf2=qr_id,
        udf3="qr",
        surl=f"{settings.BACKEND_URL}/api/payment/payu/success",
        furl=f"{settings.BACKEND_URL}/api/payment/payu/failure",
        notes={"qrId": qr_id, "isStatic": bool(qr.is_static)},
    )
    if not qr.is_static:
        metadata.pg = "DBQR"
        metadata.bankcode = "UPIDBQR"
        metadata.txn_s2s_flow = "4"
        metadata.s2s_client_ip = client_ip or "127.0.0.1"
        metadata.s2s_device_info = device_info or "Mozilla/5.0"
        metadata.expiry_time = str(settings.PAYU_QR_EXPIRY_MINUTES)

    logger.info(f"🧾 Commande QR {qr_id} txnid={metadata.txnid} receipt={metadata.receipt}")
    result = create_gateway_order(db, payment_amount, metadata)

    if result.gateway in ("razorpay", "cashfree") and result.provider_order_id:
        qr.provider_order_id = result.provider_order_id
    db.commit()
    return {"success": True, **result}


def delete_qr(db: Session, qr_id: str, user: User) -> Dict:
    qr = db.query(QRCode).filter(QRCode.qr_id == qr_id).first()
    if not qr:
        raise NotFoundError("QR Code not found")
    if qr.user_id != user.id and not user.is_admin:
        raise PaymentError("Not allowed to delete this QR Code", status_code=403)
    db.delete(qr)
    db.commit()
    logger.info(f"🗑️ QR {qr_id} supprimé par user={user.id}")
    return {"success": True, "message": "QR Code deleted successfully"}

