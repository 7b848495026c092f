from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
from datetime import datetime

# Les corps suivent les noms de champs du frontend (camelCase et razorpay_*)
_camel = ConfigDict(populate_by_name=True, extra='ignore')


class DepositOrderRequest(BaseModel):
    amount: Any = None


class RazorpayCallback(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    gateway: Optional[str] = None

    model_config = _camel


class DepositVerifyRequest(RazorpayCallback):
    amount: Any = None


class CashfreeReturnRequest(BaseModel):
    flow: Optional[str] = None
    order_id: Optional[str] = Field(default=None, alias="orderId")
    link_id: Optional[str] = Field(default=None, alias="linkId")
    qr_id: Optional[str] = Field(default=None, alias="qrId")

    model_config = _camel


class GenerateLinkRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    amount: Any = None
    description: Optional[str] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")

    model_config = _camel


class RequestMoneyRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    amount: Any = None
    description: Optional[str] = None


class CheckoutOrderRequest(BaseModel):
    link_id: Optional[str] = Field(default=None, alias="linkId")

    model_config = _camel


class CheckoutVerifyRequest(RazorpayCallback):
    link_id: Optional[str] = Field(default=None, alias="linkId")


class WithdrawRequest(BaseModel):
    amount: Any = None
    account_name: Optional[str] = Field(default=None, alias="accountName")
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    ifsc: Optional[str] = None
    bank_name: Optional[str] = Field(default=None, alias="bankName")

    model_config = _camel


class RejectRequest(BaseModel):
    reason: Optional[str] = None
