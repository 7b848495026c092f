from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from decimal import Decimal
from paywallet.database import Base
from paywallet.utils.clock import utcnow


class UserRole:
    USER = "user"
    ADMIN = "admin"


class UserStatus:
    """États supportés pour les comptes."""
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(32), nullable=False)
    password_hash = Column(String, nullable=False)
    company_name = Column(String(255))
    # Solde en roupies, seule source de vérité des fonds disponibles
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    role = Column(String(16), nullable=False, default=UserRole.USER)
    status = Column(String(16), nullable=False, default=UserStatus.ACTIVE)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    api_tokens = relationship(
        "ApiToken",
        back_populates="user",
        order_by="ApiToken.id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def __repr__(self):
        return f"<User id={self.id} email={self.email} balance={self.balance}>"


class ApiToken(Base):
    """Identifiants HTTP Basic de l'API marchand (keyId:secretKey)."""
    __tablename__ = "api_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    key_id = Column(String(64), unique=True, index=True, nullable=False)
    secret_key = Column(String(128), nullable=False)
    mode = Column(String(8), nullable=False, default="test")
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow)
    last_used_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="api_tokens")
