from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class LinkStatus:
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class QRStatus:
    ACTIVE = "active"
    PAID = "paid"
    EXPIRED = "expired"


class PaymentLink(Base):
    __tablename__ = "payment_links"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, default="")
    due_date = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default=LinkStatus.PENDING)
    # Identifiant de commande côté fournisseur (Razorpay ou Cashfree)
    provider_order_id = Column(String(128))
    provider_payment_id = Column(String(128))
    paid_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")


class QRCode(Base):
    __tablename__ = "qr_codes"

    id = Column(Integer, primary_key=True, index=True)
    qr_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), default="Payment QR")
    is_static = Column(Boolean, nullable=False, default=False)
    amount = Column(Numeric(12, 2), nullable=True)
    description = Column(Text, default="")
    expiry_minutes = Column(Integer, default=15)
    expires_at = Column(DateTime, nullable=True)
    status = Column(String(16), nullable=False, default=QRStatus.ACTIVE)

    provider_order_id = Column(String(128))
    provider_payment_id = Column(String(128))
    paid_at = Column(DateTime)
    paid_by_name = Column(String(255))
    paid_by_email = Column(String(255))
    paid_by_phone = Column(String(32))

    # QR UPI natif créé auprès de la passerelle active
    gateway = Column(String(32))
    gateway_qr_image_url = Column(Text)
    gateway_payment_url = Column(String(500))
    gateway_payment_link_id = Column(String(128), index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    __table_args__ = (
        Index("idx_qr_codes_expiry_status", "expires_at", "status"),
    )

    def is_past_expiry(self, now=None) -> bool:
        if self.is_static or self.expires_at is None:
            return False
        return self.expires_at < (now or utcnow())
