"""Générateurs d'identifiants externes (commandes, liens, QR, retraits...)."""
import secrets
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def now_ms() -> int:
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def timestamped_id(prefix: str, random_chars: int = 6) -> str:
    """PAY1718000000000AB12CD"""
    return f"{prefix}{now_ms()}{random_base36(random_chars).upper()}"


def attempt_suffix() -> str:
    """Suffixe unique par tentative de paiement (base36(ms)_rand4)."""
    return f"{to_base36(now_ms())}_{random_base36(4)}"


def hex_id(prefix: str, nbytes: int = 10) -> str:
    return f"{prefix}{secrets.token_hex(nbytes)}"


def generate_link_id() -> str:
    return timestamped_id("PAY")


def generate_qr_id(static: bool = False) -> str:
    return timestamped_id("SQR" if static else "QR")


def generate_withdrawal_id() -> str:
    return f"WD{now_ms()}"


def generate_order_id() -> str:
    return hex_id("order_")


def generate_refund_id() -> str:
    return hex_id("rfnd_")


def generate_payout_id() -> str:
    return hex_id("pout_")


def generate_api_key_id(mode: str) -> str:
    prefix = "sat_live_" if mode == "live" else "sat_test_"
    return hex_id(prefix, 12)


def generate_api_secret() -> str:
    return secrets.token_hex(32)
