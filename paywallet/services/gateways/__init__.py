"""
Couche d'abstraction des passerelles de paiement.
"""

from .base import (
    PaymentGateway, OrderMetadata, NormalizedOrder, VerifiedPayment, Rejected,
)
from .razorpay_gateway import RazorpayGateway
from .payu_gateway import PayUGateway
from .cashfree_gateway import CashfreeGateway
from .factory import get_gateway

__all__ = [
    'PaymentGateway',
    'OrderMetadata',
    'NormalizedOrder',
    'VerifiedPayment',
    'Rejected',
    'RazorpayGateway',
    'PayUGateway',
    'CashfreeGateway',
    'get_gateway',
]
