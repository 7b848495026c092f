from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

from paywallet.schemas.payment_schemas import RazorpayCallback

_camel = ConfigDict(populate_by_name=True, extra='ignore')


class QRGenerateRequest(BaseModel):
    amount: Any = None
    name: Optional[str] = None
    description: Optional[str] = None
    expiry_minutes: Optional[int] = Field(default=None, alias="expiryMinutes")

    model_config = _camel


class StaticQRGenerateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class QROrderRequest(BaseModel):
    qr_id: Optional[str] = Field(default=None, alias="qrId")
    amount: Any = None
    payer_name: Optional[str] = Field(default=None, alias="payerName")
    payer_email: Optional[str] = Field(default=None, alias="payerEmail")
    payer_phone: Optional[str] = Field(default=None, alias="payerPhone")

    model_config = _camel


class QRVerifyRequest(RazorpayCallback):
    qr_id: Optional[str] = Field(default=None, alias="qrId")
    amount: Any = None
    payer_name: Optional[str] = Field(default=None, alias="payerName")
    payer_email: Optional[str] = Field(default=None, alias="payerEmail")
    payer_phone: Optional[str] = Field(default=None, alias="payerPhone")
