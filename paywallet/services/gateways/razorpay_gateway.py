"""
Razorpay: commandes via l'API REST Orders, signature HMAC-SHA256.
"""
from decimal import Decimal
from typing import Any, Dict, Optional
import logging

from paywallet.exceptions import GatewayError
from paywallet.services.ledger_service import rupees_to_paise
from paywallet.utils.clock import unix_seconds
from paywallet.utils.ids import now_ms
from paywallet.utils.security import hmac_sha256_hex, secure_compare
from .base import OrderMetadata, PaymentGateway, Rejected, VerifiedPayment

logger = logging.getLogger(__name__)

RAZORPAY_API_BASE = "https://api.razorpay.com/v1"


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    return hmac_sha256_hex(secret, f"{order_id}|{payment_id}")


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    @property
    def _auth(self):
        return (self.config.key_id, self.config.key_secret)

    def create_order(self, amount_rupees: Decimal, metadata: OrderMetadata):
        payload = {
            "amount": rupees_to_paise(amount_rupees),
            "currency": "INR",
            "receipt": metadata.receipt or f"receipt_{now_ms()}",
            "notes": metadata.notes or {},
        }
        order = self._request("POST", f"{RAZORPAY_API_BASE}/orders", json=payload, auth=self._auth)
        logger.info(f"🧾 Commande Razorpay {order.get('id')} ({payload['amount']} paise)")
        return self._base_result(order=order)

    def verify(self, payload: Dict[str, Any]):
        order_id = payload.get("order_id")
        payment_id = payload.get("payment_id")
        signature = payload.get("signature")
        if not order_id or not payment_id or not signature:
            return Rejected("Missing payment details")

        expected = payment_signature(order_id, payment_id, self.config.key_secret)
        if not secure_compare(expected, signature):
            logger.warning(f"🚫 Signature Razorpay invalide pour {payment_id}")
            return Rejected("Invalid signature")

        return VerifiedPayment(
            gateway=self.name,
            payment_id=payment_id,
            order_id=order_id,
            raw=dict(payload),
        )

    @staticmethod
    def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
        """HMAC-SHA256 du corps brut, comparé à l'en-tête x-razorpay-signature."""
        return secure_compare(hmac_sha256_hex(secret, raw_body), signature)

    def create_payment_link(self, amount_rupees, description: str, customer: Dict[str, str],
                            callback_url: str) -> Dict[str, Any]:
        """Lien de paiement hébergé, réglé via le webhook payment_link.paid."""
        return self._request("POST", f"{RAZORPAY_API_BASE}/payment_links", auth=self._auth, json={
            "amount": rupees_to_paise(amount_rupees),
            "currency": "INR",
            "description": description,
            "customer": customer,
            "notify": {"sms": False, "email": False},
            "callback_url": callback_url,
            "callback_method": "get",
        })

    def create_upi_qr(self, amount_rupees, qr_id, user_id, description, name, expires_at):
        close_by = unix_seconds(expires_at)
        notes = {"qrId": qr_id, "userId": str(user_id)}
        try:
            qr = self._request("POST", f"{RAZORPAY_API_BASE}/payments/qr_codes", auth=self._auth, json={
                "type": "upi_qr",
                "name": name or "Payment QR",
                "usage": "single_use",
                "fixed_amount": True,
                "payment_amount": rupees_to_paise(amount_rupees),
                "description": description or "QR Payment",
                "close_by": close_by,
                "notes": notes,
            })
            if qr.get("image_url"):
                return {
                    "imageUrl": qr["image_url"],
                    "paymentUrl": qr.get("short_url"),
                    "providerId": qr.get("id"),
                }
        except GatewayError as e:
            logger.warning(f"⚠️ API QR Razorpay indisponible, essai lien de paiement: {e.message}")

        # Repli: lien de paiement UPI
        link = self._request("POST", f"{RAZORPAY_API_BASE}/payment_links", auth=self._auth, json={
            "amount": rupees_to_paise(amount_rupees),
            "currency": "INR",
            "description": description or "QR Payment",
            "accept_partial": False,
            "upi_link": True,
            "notify": {"sms": False, "email": False},
            "reminder_enable": False,
            "notes": notes,
            "expire_by": close_by,
        })
        if link.get("short_url"):
            return {"imageUrl": None, "paymentUrl": link["short_url"], "providerId": link.get("id")}
        return None
