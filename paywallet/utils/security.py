"""
🔐 Utilitaires de sécurité
Masquage des secrets dans les logs et comparaisons à temps constant
"""

import hmac
import hashlib
from typing import Any, Dict, Optional

# Valeur renvoyée à la place d'un secret de passerelle
MASKED_SECRET = "••••••••••••••••••••••••"


def mask_secret(value: str, visible_chars: int = 4) -> str:
    """
    Masquer un secret en affichant seulement les premiers et derniers caractères.

    Args:
        value: Le secret à masquer
        visible_chars: Nombre de caractères visibles à chaque bout

    Returns:
        Le secret masqué (ex: "rzp_****abcd")
    """
    if not value or len(value) <= visible_chars * 2:
        return "***" * 4

    return f"{value[:visible_chars]}{'*' * (len(value) - visible_chars * 2)}{value[-visible_chars:]}"


def is_masked(value: Optional[str]) -> bool:
    """Vrai si la valeur est le masque renvoyé à l'interface d'administration."""
    return bool(value) and set(value) == {"•"}


def mask_account_number(account_number: Optional[str]) -> Optional[str]:
    """Ne garder que les 4 derniers chiffres, le reste en '*'."""
    if not account_number:
        return None
    return account_number[-4:].rjust(len(account_number), "*")


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Masquer les secrets dans un dictionnaire.

    Args:
        data: Dictionnaire à nettoyer

    Returns:
        Dictionnaire avec secrets masqués
    """
    sensitive_keys = [
        'password', 'secret', 'token', 'api_key', 'apikey',
        'private_key', 'access_token', 'hash', 'signature', 'salt',
    ]

    sanitized = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            if isinstance(value, str):
                sanitized[key] = mask_secret(value)
            else:
                sanitized[key] = "***"
        else:
            sanitized[key] = value

    return sanitized


def secure_compare(expected: Optional[str], received: Optional[str]) -> bool:
    """Comparaison à temps constant de deux signatures hexadécimales."""
    if not expected or not received:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def hmac_sha256_hex(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sha512_hex(value: str) -> str:
    return hashlib.sha512(value.encode("utf-8")).hexdigest()
