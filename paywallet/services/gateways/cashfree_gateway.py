"""
Cashfree: commandes via l'API PG REST, vérification par interrogation du
statut de la commande (jamais sur la foi du client).
"""
from decimal import Decimal
from typing import Any, Dict
from urllib.parse import urlencode
import logging

from paywallet.config import settings
from paywallet.services.ledger_service import to_decimal
from paywallet.utils.ids import now_ms
from .base import OrderMetadata, PaymentGateway, Rejected, VerifiedPayment

logger = logging.getLogger(__name__)

CASHFREE_API_VERSION = "2023-08-01"
CASHFREE_SANDBOX_URL = "https://sandbox.cashfree.com/pg"
CASHFREE_LIVE_URL = "https://api.cashfree.com/pg"


class CashfreeGateway(PaymentGateway):
    name = "cashfree"

    @property
    def base_url(self) -> str:
        return CASHFREE_SANDBOX_URL if self.config.is_test_mode else CASHFREE_LIVE_URL

    def _headers(self, request_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self.config.key_id,
            "x-client-secret": self.config.key_secret,
            "x-api-version": CASHFREE_API_VERSION,
            "x-request-id": request_id,
        }

    def create_order(self, amount_rupees: Decimal, metadata: OrderMetadata):
        order_id = metadata.order_id or f"CF_{now_ms()}"
        return_params = {"flow": metadata.flow_type or "deposit", "cf_order_id": order_id}
        if metadata.link_id:
            return_params["linkId"] = metadata.link_id
        if metadata.qr_id:
            return_params["qrId"] = metadata.qr_id

        payload = {
            "order_id": order_id,
            "order_amount": float(to_decimal(amount_rupees)),
            "order_currency": "INR",
            "customer_details": {
                "customer_id": str(metadata.customer_id or metadata.udf1 or "customer_001"),
                "customer_name": metadata.firstname or "Customer",
                "customer_email": metadata.email or "customer@example.com",
                "customer_phone": metadata.phone or "9999999999",
            },
            "order_meta": {
                "return_url": f"{settings.FRONTEND_URL}/payment/success?{urlencode(return_params)}",
            },
            "order_note": metadata.productinfo or "Payment",
        }

        created = self._request(
            "POST", f"{self.base_url}/orders",
            json=payload, headers=self._headers(f"create_{order_id}"),
        )
        logger.info(f"🧾 Commande Cashfree {created.get('order_id')}")
        return self._base_result(cashfreeData={
            "orderId": created.get("order_id"),
            "paymentSessionId": created.get("payment_session_id"),
            "mode": "sandbox" if self.config.is_test_mode else "production",
        })

    def fetch_order(self, order_id: str) -> Dict[str, Any]:
        return self._request(
            "GET", f"{self.base_url}/orders/{order_id}",
            headers=self._headers(f"fetch_{order_id}"),
        )

    def verify(self, payload: Dict[str, Any]):
        order_id = payload.get("order_id")
        if not order_id:
            return Rejected("order_id is required")

        order = self.fetch_order(order_id)
        status = order.get("order_status")
        if status != "PAID":
            return Rejected("Payment is not completed yet", status=status)

        return VerifiedPayment(
            gateway=self.name,
            payment_id=order_id,
            order_id=order_id,
            amount=to_decimal(order.get("order_amount") or 0),
            status="PAID",
            raw=order,
        )

    def create_upi_qr(self, amount_rupees, qr_id, user_id, description, name, expires_at):
        amount = float(to_decimal(amount_rupees))
        link = self._request("POST", f"{self.base_url}/links", headers=self._headers(f"qr_{qr_id}"), json={
            "link_id": qr_id,
            "link_amount": amount,
            "link_currency": "INR",
            "link_purpose": description or "QR Payment",
            "link_minimum_partial_amount": amount,
            "customer_details": {"customer_phone": "9999999999", "customer_name": "Customer"},
            "link_meta": {
                "upi_intent": True,
                "return_url": f"{settings.FRONTEND_URL}/payment/success?qrId={qr_id}",
            },
            "link_expiry_time": expires_at.isoformat() + "Z",
            "link_notify": {"send_sms": False, "send_email": False},
        })
        if link.get("link_qrcode"):
            return {
                "imageUrl": link["link_qrcode"],
                "paymentUrl": link.get("link_url"),
                "providerId": str(link.get("cf_link_id") or link.get("link_id") or ""),
            }
        return None
