from .auth import verify_password, get_password_hash, create_access_token, verify_token
from .ledger_service import (
    credit_once, record_pending_debit, debit_balance, get_balance, list_transactions,
    get_payment_settings, paise_to_rupees, rupees_to_paise,
)
from .user_service import UserService

__all__ = [
    "verify_password", "get_password_hash", "create_access_token", "verify_token",
    "credit_once", "record_pending_debit", "debit_balance", "get_balance", "list_transactions",
    "get_payment_settings", "paise_to_rupees", "rupees_to_paise",
    "UserService",
]
