"""
Interface commune des passerelles de paiement.

Chaque fournisseur implémente create_order() et verify(); la couche HTTP ne
dépend que de cette interface et branche sur le champ "gateway" du résultat.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Union
import logging

import requests

from paywallet.config import settings
from paywallet.exceptions import GatewayError

logger = logging.getLogger(__name__)


@dataclass
class OrderMetadata:
    """Paramètres transmis à la création d'une commande fournisseur."""
    flow_type: str = "deposit"  # deposit, checkout, qr
    receipt: Optional[str] = None
    notes: Dict[str, Any] = field(default_factory=dict)
    customer_id: Optional[str] = None
    firstname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    productinfo: Optional[str] = None
    link_id: Optional[str] = None
    qr_id: Optional[str] = None
    txnid: Optional[str] = None
    order_id: Optional[str] = None
    surl: Optional[str] = None
    furl: Optional[str] = None
    udf1: str = ""
    udf2: str = ""
    udf3: str = ""
    udf4: str = ""
    udf5: str = ""
    # Paramètres PayU du flux QR dynamique (UPI DBQR)
    pg: Optional[str] = None
    bankcode: Optional[str] = None
    txn_s2s_flow: Optional[str] = None
    s2s_client_ip: Optional[str] = None
    s2s_device_info: Optional[str] = None
    expiry_time: Optional[str] = None


class NormalizedOrder(dict):
    """
    Résultat de create_order: toujours gateway, key, isTestMode, plus
    "order" (razorpay), "payuData" (payu) ou "cashfreeData" (cashfree).
    """

    @property
    def gateway(self) -> str:
        return self["gateway"]

    @property
    def provider_order_id(self) -> Optional[str]:
        if self.get("order"):
            return self["order"].get("id")
        if self.get("cashfreeData"):
            return self["cashfreeData"].get("orderId")
        if self.get("payuData"):
            return self["payuData"].get("txnid")
        return None


@dataclass(frozen=True)
class VerifiedPayment:
    gateway: str
    payment_id: str
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: str = "captured"
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    reason: str
    status: Optional[str] = None


VerificationResult = Union[VerifiedPayment, Rejected]


class PaymentGateway(ABC):
    """Stratégie d'un fournisseur, construite à partir d'une GatewayConfig."""

    name = "base"

    def __init__(self, config):
        self.config = config

    @property
    def label(self) -> str:
        return self.config.label or self.name

    @abstractmethod
    def create_order(self, amount_rupees: Decimal, metadata: OrderMetadata) -> NormalizedOrder:
        """Créer une commande chez le fournisseur."""

    @abstractmethod
    def verify(self, payload: Dict[str, Any]) -> VerificationResult:
        """Confirmer un paiement avant tout crédit."""

    def create_upi_qr(self, amount_rupees: Decimal, qr_id: str, user_id: int,
                      description: str, name: str, expires_at) -> Optional[Dict[str, Any]]:
        """QR UPI natif. None si le fournisseur ne le propose pas."""
        return None

    def _base_result(self, **extra) -> NormalizedOrder:
        result = NormalizedOrder(
            gateway=self.name,
            key=self.config.key_id,
            isTestMode=self.config.is_test_mode,
        )
        result.update(extra)
        return result

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Appel HTTP sortant avec timeout; toute erreur devient GatewayError."""
        kwargs.setdefault("timeout", settings.PROVIDER_TIMEOUT_SECONDS)
        try:
            response = requests.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.error(f"❌ {self.label} injoignable: {e}")
            raise GatewayError(f"{self.label} request failed: {e}", gateway=self.name)

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = self._error_message(data) or f"{self.label} API error ({response.status_code})"
            logger.warning(f"⚠️ {self.label} {method} {url} -> {response.status_code}: {message}")
            raise GatewayError(message, gateway=self.name, upstream_status=response.status_code)

        return data

    @staticmethod
    def _error_message(data: Dict[str, Any]) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        error = data.get("error")
        if isinstance(error, dict) and error.get("description"):
            return error["description"]
        return data.get("message") or data.get("error_description")
