from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, ForeignKey, Index, UniqueConstraint
from decimal import Decimal
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class TransactionType:
    CREDIT = "Credit"
    DEBIT = "Debit"


class TransactionStatus:
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class TransactionCategory:
    DEPOSIT = "deposit"
    PAYMENT_LINK = "payment_link"
    QR = "qr"
    API_ORDER = "api_order"
    WITHDRAWAL = "withdrawal"
    PAYOUT = "payout"
    REFUND = "refund"


class Transaction(Base):
    """
    Écriture du grand livre. Le couple (user_id, transaction_id) est unique:
    un paiement externe ne peut être crédité qu'une seule fois par compte.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(String(128), nullable=False)
    description = Column(Text, default="")
    type = Column(String(8), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(16), nullable=False, default=TransactionStatus.PENDING)
    category = Column(String(32), nullable=False, default="other")
    method = Column(String(32), nullable=True)
    customer_name = Column(String(255))
    reference_id = Column(String(128))
    fee = Column(Numeric(12, 2), default=Decimal("0.00"))
    net_amount = Column(Numeric(12, 2))
    notes = Column(Text)

    # Coordonnées bancaires / UPI des paiements sortants
    account_number = Column(String(64))
    ifsc_code = Column(String(32))
    upi_id = Column(String(128))
    bank_name = Column(String(255))

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "transaction_id", name="uq_transactions_user_txn"),
        Index("idx_transactions_user_created", "user_id", "created_at"),
        Index("idx_transactions_status", "status"),
        Index("idx_transactions_category", "category"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "transactionId": self.transaction_id,
            "description": self.description,
            "type": self.type,
            "amount": float(self.amount),
            "status": self.status,
            "category": self.category,
            "method": self.method,
            "referenceId": self.reference_id,
            "fee": float(self.fee or 0),
            "netAmount": float(self.net_amount) if self.net_amount is not None else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
