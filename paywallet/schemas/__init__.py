from .auth_schemas import (
    UserRegister, UserLogin, UserResponse, Token,
    ApiTokenCreate, ApiTokenResponse, ApiTokenCreated,
)
from .payment_schemas import (
    DepositOrderRequest, RazorpayCallback, DepositVerifyRequest, CashfreeReturnRequest,
    GenerateLinkRequest, RequestMoneyRequest, CheckoutOrderRequest, CheckoutVerifyRequest,
    WithdrawRequest, RejectRequest,
)
from .qr_schemas import QRGenerateRequest, StaticQRGenerateRequest, QROrderRequest, QRVerifyRequest
from .gateway_schemas import GatewayUpdate
from .payout_schemas import PayoutCreate, PayoutApprove, PayoutReject, PayoutComplete
from .merchant_schemas import OrderCreate, PaymentVerify, RefundCreate, MerchantPayoutCreate

__all__ = [
    # ============ AUTH ============
    "UserRegister", "UserLogin", "UserResponse", "Token",
    "ApiTokenCreate", "ApiTokenResponse", "ApiTokenCreated",

    # ============ PAIEMENTS ============
    "DepositOrderRequest", "RazorpayCallback", "DepositVerifyRequest", "CashfreeReturnRequest",
    "GenerateLinkRequest", "RequestMoneyRequest", "CheckoutOrderRequest", "CheckoutVerifyRequest",
    "WithdrawRequest", "RejectRequest",

    # ============ QR ============
    "QRGenerateRequest", "StaticQRGenerateRequest", "QROrderRequest", "QRVerifyRequest",

    # ============ PASSERELLES ============
    "GatewayUpdate",

    # ============ VERSEMENTS ============
    "PayoutCreate", "PayoutApprove", "PayoutReject", "PayoutComplete",

    # ============ API MARCHAND ============
    "OrderCreate", "PaymentVerify", "RefundCreate", "MerchantPayoutCreate",
]
