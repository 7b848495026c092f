from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class GatewayUpdate(BaseModel):
    """Champs absents = inchangés. Un keySecret masqué est ignoré."""
    key_id: Optional[str] = Field(default=None, alias="keyId")
    key_secret: Optional[str] = Field(default=None, alias="keySecret")
    is_enabled: Optional[bool] = Field(default=None, alias="isEnabled")
    is_test_mode: Optional[bool] = Field(default=None, alias="isTestMode")
    checkout_url: Optional[str] = Field(default=None, alias="checkoutUrl")

    model_config = ConfigDict(populate_by_name=True, extra='ignore')
