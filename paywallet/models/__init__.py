from .user_models import User, ApiToken, UserRole, UserStatus
from .gateway_models import GatewaySettings
from .order_models import Order, OrderStatus
from .receivable_models import PaymentLink, QRCode, LinkStatus, QRStatus
from .transaction_models import Transaction, TransactionType, TransactionStatus, TransactionCategory
from .payout_models import Withdrawal, PayoutRequest, WithdrawalStatus, PayoutStatus
from .settings_models import PaymentSettings
from .admin_models import AdminLog

__all__ = [
    "User", "ApiToken", "UserRole", "UserStatus",
    "GatewaySettings",
    "Order", "OrderStatus",
    "PaymentLink", "QRCode", "LinkStatus", "QRStatus",
    "Transaction", "TransactionType", "TransactionStatus", "TransactionCategory",
    "Withdrawal", "PayoutRequest", "WithdrawalStatus", "PayoutStatus",
    "PaymentSettings",
    "AdminLog",
]
