"""
Exceptions métier du portefeuille et de l'API marchand
"""
from typing import Optional


class PaymentError(Exception):
    """Erreur métier traduite en réponse HTTP par les routes."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None, extra: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        # Champs ajoutés au corps de la réponse d'erreur
        self.extra = extra or {}
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(PaymentError):
    """Passerelle absente, désactivée ou identifiants vides."""


class GatewayError(PaymentError):
    """Échec d'un appel vers un fournisseur de paiement."""

    status_code = 500

    def __init__(self, message: str, gateway: Optional[str] = None, status_code: Optional[int] = None,
                 upstream_status: Optional[int] = None):
        super().__init__(message, status_code)
        self.gateway = gateway
        # Code HTTP renvoyé par le fournisseur, jamais recopié tel quel au client
        self.upstream_status = upstream_status


class InsufficientBalanceError(PaymentError):
    def __init__(self, message: str, balance=None, required=None, extra: Optional[dict] = None):
        super().__init__(message, extra=extra)
        self.balance = balance
        self.required = required


class NotFoundError(PaymentError):
    status_code = 404


# Codes autorisés sur l'API marchand
BAD_REQUEST_ERROR = "BAD_REQUEST_ERROR"
SERVER_ERROR = "SERVER_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


class MerchantAPIError(Exception):
    """Erreur rendue au format {"error": {...}} sur /api/v1."""

    def __init__(
        self,
        code: str,
        description: str,
        status_code: int = 400,
        field: Optional[str] = None,
        source: str = "business",
    ):
        super().__init__(description)
        self.code = code
        self.description = description
        self.status_code = status_code
        self.field = field
        self.source = source

    def to_dict(self):
        error = {
            "code": self.code,
            "description": self.description,
            "source": self.source,
        }
        if self.field:
            error["field"] = self.field
        return {"error": error}
