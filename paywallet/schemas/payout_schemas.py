from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

_camel = ConfigDict(populate_by_name=True, extra='ignore')


class PayoutCreate(BaseModel):
    amount: Any = None
    method: Optional[str] = None
    account_number: Optional[str] = Field(default=None, alias="accountNumber")
    ifsc_code: Optional[str] = Field(default=None, alias="ifscCode")
    account_holder_name: Optional[str] = Field(default=None, alias="accountHolderName")
    bank_name: Optional[str] = Field(default=None, alias="bankName")
    upi_id: Optional[str] = Field(default=None, alias="upiId")

    model_config = _camel


class PayoutApprove(BaseModel):
    fee: Any = 0
    admin_note: Optional[str] = Field(default=None, alias="adminNote")

    model_config = _camel


class PayoutReject(BaseModel):
    reason: Optional[str] = None


class PayoutComplete(BaseModel):
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")

    model_config = _camel
