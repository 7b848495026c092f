from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, ForeignKey, Index
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class OrderStatus:
    CREATED = "created"
    ATTEMPTED = "attempted"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class Order(Base):
    """
    Commande créée par un marchand via l'API v1.
    Les montants sont en paise.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    merchant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    amount_paid = Column(Integer, nullable=False, default=0)
    currency = Column(String(8), default="INR")
    receipt = Column(String(255), nullable=True)
    notes = Column(JSON, default=dict)
    status = Column(String(16), nullable=False, default=OrderStatus.CREATED)
    attempts = Column(Integer, nullable=False, default=0)

    # Détails du paiement
    payment_id = Column(String(64), nullable=True, index=True)
    payment_method = Column(String(16), nullable=True)
    payment_status = Column(String(16), nullable=True)

    customer_email = Column(String(255))
    customer_phone = Column(String(32))
    customer_name = Column(String(255))
    callback_url = Column(String(500))
    webhook_url = Column(String(500))

    mode = Column(String(8), default="test")

    paid_at = Column(DateTime)
    expired_at = Column(DateTime)

    refund_id = Column(String(64))
    refund_amount = Column(Integer)
    refunded_at = Column(DateTime)

    signature = Column(String(255))
    signature_verified = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_orders_merchant_created", "merchant_id", "created_at"),
        Index("idx_orders_status_merchant", "status", "merchant_id"),
    )

    @property
    def amount_due(self) -> int:
        return self.amount - (self.amount_paid or 0)
