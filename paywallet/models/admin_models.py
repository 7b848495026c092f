"""
MODÈLES ADMINISTRATEURS - JOURNAL D'AUDIT
"""
from sqlalchemy import Column, Integer, String, JSON, DateTime, Index
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class AdminLog(Base):
    """
    Journal des actions administratives et des événements système
    (webhooks, callbacks). admin_id=0 désigne le système.
    """
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    related_transaction_id = Column(String(128), nullable=True, index=True)
    related_user_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index('idx_admin_logs_admin_action', 'admin_id', 'action'),
    )

    def __repr__(self):
        return f"<AdminLog id={self.id} action={self.action} admin={self.admin_id}>"

    @classmethod
    def create_audit_log(cls, admin_id: int, action: str, details: dict = None,
                         related_user_id: int = None, related_transaction_id: str = None):
        """Créer un log d'audit standard"""
        return cls(
            admin_id=admin_id,
            action=action,
            details=details or {},
            related_user_id=related_user_id,
            related_transaction_id=related_transaction_id,
        )
