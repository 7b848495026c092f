from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from decimal import Decimal
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class WithdrawalStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"


class PayoutStatus:
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Withdrawal(Base):
    """Demande de retrait vers un compte bancaire (débit à l'approbation)."""
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    withdrawal_id = Column(String(64), unique=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    commission = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(12, 2), nullable=False)
    account_name = Column(String(255))
    account_number = Column(String(64))
    ifsc = Column(String(32))
    bank_name = Column(String(255))
    type = Column(String(16), default="withdrawal")
    status = Column(String(16), nullable=False, default=WithdrawalStatus.PENDING)
    rejection_reason = Column(Text)
    approved_at = Column(DateTime)
    rejected_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "withdrawalId": self.withdrawal_id,
            "userId": self.user_id,
            "userName": self.user.full_name if self.user else None,
            "userEmail": self.user.email if self.user else None,
            "amount": float(self.amount),
            "commission": float(self.commission or 0),
            "total": float(self.total),
            "accountName": self.account_name,
            "accountNumber": self.account_number,
            "ifsc": self.ifsc,
            "bankName": self.bank_name,
            "type": self.type,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "approvedAt": self.approved_at.isoformat() if self.approved_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class PayoutRequest(Base):
    """Demande de versement d'un marchand (tableau de bord ou API v1)."""
    __tablename__ = "payout_requests"

    id = Column(Integer, primary_key=True, index=True)
    payout_id = Column(String(64), unique=True, nullable=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(8), nullable=False)

    # Coordonnées bancaires
    account_number = Column(String(64))
    ifsc_code = Column(String(32))
    account_holder_name = Column(String(255))
    bank_name = Column(String(255))
    # UPI
    upi_id = Column(String(128))

    status = Column(String(16), nullable=False, default=PayoutStatus.REQUESTED)
    rejection_reason = Column(Text)
    admin_note = Column(Text)
    approved_at = Column(DateTime)
    rejected_at = Column(DateTime)
    completed_at = Column(DateTime)
    transaction_id = Column(String(128))
    fee = Column(Numeric(12, 2), default=Decimal("0.00"))
    net_amount = Column(Numeric(12, 2))

    notes = Column(JSON, default=dict)
    source = Column(String(16), default="dashboard")
    api_key_id = Column(String(64))

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    vendor = relationship("User")

    __table_args__ = (
        Index("idx_payout_vendor_status", "vendor_id", "status"),
        Index("idx_payout_status_created", "status", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "payoutId": self.payout_id,
            "vendorId": self.vendor_id,
            "amount": float(self.amount),
            "method": self.method,
            "accountNumber": self.account_number,
            "ifscCode": self.ifsc_code,
            "accountHolderName": self.account_holder_name,
            "bankName": self.bank_name,
            "upiId": self.upi_id,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "adminNote": self.admin_note,
            "fee": float(self.fee or 0),
            "netAmount": float(self.net_amount) if self.net_amount is not None else None,
            "transactionId": self.transaction_id,
            "source": self.source,
            "approvedAt": self.approved_at.isoformat() if self.approved_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
