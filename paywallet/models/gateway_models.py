from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class GatewaySettings(Base):
    """Configuration d'un fournisseur de paiement (une ligne par passerelle)"""

    __tablename__ = "gateway_settings"

    id = Column(Integer, primary_key=True, index=True)
    gateway = Column(String(32), unique=True, nullable=False, index=True)
    label = Column(String(100), nullable=False)
    description = Column(Text, default="")

    # === IDENTIFIANTS ===
    key_id = Column(String(255), nullable=False, default="")
    key_secret = Column(String(255), nullable=False, default="")
    key_id_label = Column(String(100), default="Key ID")
    key_secret_label = Column(String(100), default="Key Secret")

    # === MÉTADONNÉES ===
    docs_url = Column(String(500), default="")
    setup_note = Column(Text, default="")
    checkout_mode = Column(String(16), default="redirect")
    is_integrated = Column(Boolean, default=False)
    checkout_url = Column(String(500), default="")

    # === ÉTAT ===
    is_enabled = Column(Boolean, nullable=False, default=False)
    is_test_mode = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=False)
    updated_by = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def has_credentials(self) -> bool:
        return bool((self.key_id or "").strip() and (self.key_secret or "").strip())

    def __repr__(self):
        return f"<GatewaySettings {self.gateway} enabled={self.is_enabled} active={self.is_active}>"
