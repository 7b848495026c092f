from .auth import router as auth_router
from .payments import router as payments_router
from .qr import router as qr_router
from .gateways import router as gateways_router
from .payout_requests import router as payout_requests_router
from .withdrawals import router as withdrawals_router
from .merchant_api import router as merchant_api_router

__all__ = [
    "auth_router", "payments_router", "qr_router", "gateways_router",
    "payout_requests_router", "withdrawals_router", "merchant_api_router",
]
