"""Sélection de la stratégie par identifiant de passerelle."""
from typing import Dict, Type

from paywallet.exceptions import ConfigurationError
from .base import PaymentGateway
from .razorpay_gateway import RazorpayGateway
from .payu_gateway import PayUGateway
from .cashfree_gateway import CashfreeGateway

_GATEWAYS: Dict[str, Type[PaymentGateway]] = {
    RazorpayGateway.name: RazorpayGateway,
    PayUGateway.name: PayUGateway,
    CashfreeGateway.name: CashfreeGateway,
}


def get_gateway(config) -> PaymentGateway:
    gateway_class = _GATEWAYS.get(config.gateway)
    if gateway_class is None:
        raise ConfigurationError(f"{config.label or config.gateway} is not integrated yet")
    return gateway_class(config)
