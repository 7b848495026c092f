"""
Corps de l'API marchand v1.

Les champs restent permissifs: la validation métier (montant en paise,
méthode, coordonnées) est faite par merchant_service pour produire les
erreurs au format {"error": {...}} plutôt qu'un 422.
"""
from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional

_lenient = ConfigDict(extra='ignore')


class OrderCreate(BaseModel):
    amount: Any = None
    currency: Optional[str] = "INR"
    receipt: Optional[str] = None
    notes: Optional[Dict[str, Any]] = None
    callback_url: Optional[str] = None
    webhook_url: Optional[str] = None
    customer: Optional[Dict[str, Any]] = None

    model_config = _lenient


class PaymentVerify(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    signature: Optional[str] = None

    model_config = _lenient


class RefundCreate(BaseModel):
    amount: Any = None
    notes: Optional[Dict[str, Any]] = None

    model_config = _lenient


class MerchantPayoutCreate(BaseModel):
    amount: Any = None
    currency: Optional[str] = "INR"
    method: Optional[str] = None
    bank_account: Optional[Dict[str, Any]] = None
    upi: Optional[Dict[str, Any]] = None
    notes: Optional[Dict[str, Any]] = None

    model_config = _lenient
