from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from paywallet.models.user_models import ApiToken, User, UserRole, UserStatus
from paywallet.services.auth import get_password_hash, verify_password
from paywallet.utils.clock import utcnow
from paywallet.utils.ids import generate_api_key_id, generate_api_secret

logger = logging.getLogger(__name__)

API_TOKEN_MODES = ("test", "live")


class UserService:
    """Comptes et identifiants de l'API marchand."""

    @staticmethod
    def create_user(db: Session, user_data) -> User:
        if db.query(User).filter(User.email == user_data.email).first():
            raise ValueError("User with this email already exists")

        user = User(
            full_name=user_data.full_name,
            email=user_data.email,
            phone=user_data.phone,
            password_hash=get_password_hash(user_data.password),
            company_name=user_data.company_name,
            role=UserRole.USER,
            status=UserStatus.ACTIVE,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"👤 Compte créé: id={user.id}")
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Optional[User]:
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def list_api_tokens(db: Session, user: User) -> List[ApiToken]:
        return db.query(ApiToken).filter(ApiToken.user_id == user.id).order_by(ApiToken.id).all()

    @staticmethod
    def create_api_token(db: Session, user: User, name: str, mode: str = "test") -> ApiToken:
        """Nouvelle paire keyId/secretKey; le secret n'est renvoyé qu'à la création."""
        if not name:
            raise ValueError("Token name is required")
        if mode not in API_TOKEN_MODES:
            raise ValueError("Invalid mode. Must be 'test' or 'live'")

        token = ApiToken(
            user_id=user.id,
            name=name,
            key_id=generate_api_key_id(mode),
            secret_key=generate_api_secret(),
            mode=mode,
            status="active",
            created_at=utcnow(),
        )
        db.add(token)
        db.commit()
        db.refresh(token)
        logger.info(f"🔑 Clé API {token.key_id[:15]}... créée pour user={user.id}")
        return token

    @staticmethod
    def revoke_api_token(db: Session, user: User, token_id: int) -> bool:
        token = (
            db.query(ApiToken)
            .filter(ApiToken.id == token_id, ApiToken.user_id == user.id)
            .first()
        )
        if not token:
            return False
        token.status = "revoked"
        db.commit()
        logger.info(f"🔒 Clé API {token.key_id[:15]}... révoquée")
        return True
