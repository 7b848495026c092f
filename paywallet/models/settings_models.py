from sqlalchemy import Column, Integer, Numeric, DateTime
from decimal import Decimal
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class PaymentSettings(Base):
    """Paramètres de paiement de la plateforme (ligne unique)"""

    __tablename__ = "payment_settings"

    id = Column(Integer, primary_key=True, index=True)

    # === FRAIS ===
    commission_rate = Column(Numeric(5, 2), nullable=False, default=Decimal("2.00"))  # pourcentage

    # === RETRAITS ===
    min_withdrawal = Column(Numeric(12, 2), nullable=False, default=Decimal("50.00"))
    max_withdrawal = Column(Numeric(12, 2), nullable=False, default=Decimal("500000.00"))

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
