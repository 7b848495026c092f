"""
PayU: formulaire signé SHA-512 posté vers la page hébergée, callback
vérifié par le hash inverse.
"""
from decimal import Decimal
from typing import Any, Dict
import logging

from paywallet.config import settings
from paywallet.services.ledger_service import to_decimal
from paywallet.utils.ids import attempt_suffix, now_ms, random_base36
from paywallet.utils.security import secure_compare, sha512_hex
from .base import OrderMetadata, PaymentGateway, Rejected, VerifiedPayment

logger = logging.getLogger(__name__)

PAYU_TEST_URL = "https://test.payu.in/_payment"
PAYU_LIVE_URL = "https://secure.payu.in/_payment"

UDF_FIELDS = ("udf1", "udf2", "udf3", "udf4", "udf5")


def forward_hash(params: Dict[str, Any], salt: str) -> str:
    """sha512(key|txnid|amount|productinfo|firstname|email|udf1..udf5||||||salt)"""
    udfs = "|".join(str(params.get(name) or "") for name in UDF_FIELDS)
    hash_string = (
        f"{params['key']}|{params['txnid']}|{params['amount']}|{params['productinfo']}|"
        f"{params['firstname']}|{params['email']}|{udfs}||||||{salt}"
    )
    return sha512_hex(hash_string)


def reverse_hash(params: Dict[str, Any], salt: str) -> str:
    """sha512(salt|status||||||udf5|udf4|udf3|udf2|udf1|email|firstname|productinfo|amount|txnid|key)"""
    udfs = "|".join(str(params.get(name) or "") for name in reversed(UDF_FIELDS))
    hash_string = (
        f"{salt}|{params.get('status', '')}||||||{udfs}|{params.get('email', '')}|"
        f"{params.get('firstname', '')}|{params.get('productinfo', '')}|{params.get('amount', '')}|"
        f"{params.get('txnid', '')}|{params.get('key', '')}"
    )
    return sha512_hex(hash_string)


class PayUGateway(PaymentGateway):
    name = "payu"

    def create_order(self, amount_rupees: Decimal, metadata: OrderMetadata):
        backend = settings.BACKEND_URL
        txnid = metadata.txnid or f"TXN{now_ms()}{random_base36(4).upper()}"
        params = {
            "key": self.config.key_id,
            "txnid": txnid,
            "amount": f"{to_decimal(amount_rupees):.2f}",
            "productinfo": metadata.productinfo or "Payment",
            "firstname": metadata.firstname or "Customer",
            "email": metadata.email or "customer@example.com",
            "phone": metadata.phone or "",
            "surl": metadata.surl or f"{backend}/api/payment/payu/success",
            "furl": metadata.furl or f"{backend}/api/payment/payu/failure",
        }
        for name in UDF_FIELDS:
            params[name] = getattr(metadata, name) or ""

        if metadata.flow_type == "qr" and metadata.pg:
            params.update({
                "pg": metadata.pg or "DBQR",
                "bankcode": metadata.bankcode or "UPIDBQR",
                "txn_s2s_flow": str(metadata.txn_s2s_flow or 4),
                "s2s_client_ip": metadata.s2s_client_ip or "127.0.0.1",
                "s2s_device_info": metadata.s2s_device_info or "Mozilla/5.0",
                "expiry_time": str(metadata.expiry_time or settings.PAYU_QR_EXPIRY_MINUTES),
            })

        params["hash"] = forward_hash(params, self.config.key_secret)
        params["payuUrl"] = PAYU_TEST_URL if self.config.is_test_mode else PAYU_LIVE_URL
        logger.info(f"🧾 Formulaire PayU {txnid} ({params['amount']} ₹, flux={metadata.flow_type})")
        return self._base_result(payuData=params)

    def verify(self, payload: Dict[str, Any]):
        # Le hash est recalculé avec la clé configurée, pas celle postée
        fields = dict(payload)
        fields["key"] = self.config.key_id
        expected = reverse_hash(fields, self.config.key_secret)

        if not secure_compare(expected, payload.get("hash")):
            logger.warning(f"🚫 Hash PayU invalide pour txnid={payload.get('txnid')}")
            return Rejected("hash_mismatch")
        if payload.get("status") != "success":
            return Rejected("payment_failed", status=payload.get("status"))

        return VerifiedPayment(
            gateway=self.name,
            payment_id=payload.get("mihpayid") or payload.get("txnid"),
            order_id=payload.get("txnid"),
            amount=to_decimal(payload.get("amount") or 0),
            status="success",
            raw=dict(payload),
        )

    def create_upi_qr(self, amount_rupees, qr_id, user_id, description, name, expires_at):
        """QR dynamique DBQR via l'appel S2S; None si PayU ne renvoie pas de JSON."""
        base = "https://test.payu.in" if self.config.is_test_mode else "https://info.payu.in"
        backend = settings.BACKEND_URL
        txnid = f"TXN_QR_{attempt_suffix()}"
        params = {
            "key": self.config.key_id,
            "txnid": txnid,
            "amount": f"{to_decimal(amount_rupees):.2f}",
            "productinfo": description or "QR Payment",
            "firstname": "Customer",
            "email": "customer@example.com",
            "surl": f"{backend}/api/payment/payu/success",
            "furl": f"{backend}/api/payment/payu/failure",
            "pg": "DBQR",
            "bankcode": "UPIDBQR",
            "txn_s2s_flow": "4",
            "udf1": str(user_id),
            "udf2": qr_id,
            "udf3": "qr",
        }
        params["hash"] = forward_hash(params, self.config.key_secret)

        data = self._request("POST", f"{base}/_payment", data=params, allow_redirects=False)
        nested = data.get("data") or {}
        image_url = data.get("qrCodeUrl") or nested.get("qrCodeUrl")
        intent_url = data.get("intent_url") or nested.get("intent_url")
        if not image_url and not intent_url:
            logger.warning(f"⚠️ Réponse DBQR PayU inattendue pour {qr_id}")
            return None
        return {"imageUrl": image_url, "paymentUrl": intent_url, "providerId": txnid}
