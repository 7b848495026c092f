from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import List
import logging

from paywallet.config import settings
from paywallet.database import get_db
from paywallet.middleware.rate_limit import limiter, AUTH_LIMIT
from paywallet.models.user_models import User
from paywallet.schemas.auth_schemas import (
    ApiTokenCreate, ApiTokenCreated, ApiTokenResponse, Token, UserLogin, UserRegister, UserResponse,
)
from paywallet.services.auth import create_access_token, get_current_user_from_token
from paywallet.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/register", response_model=UserResponse)
@limiter.limit(AUTH_LIMIT)
def register(request: Request, user_data: UserRegister, db: Session = Depends(get_db)):
    try:
        return UserService.create_user(db, user_data)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.post("/login", response_model=Token)
@limiter.limit(AUTH_LIMIT)
def login(request: Request, user_data: UserLogin, db: Session = Depends(get_db)):
    """
    Authentification email/mot de passe
    Retourne un token JWT portant user_id
    """
    user = UserService.authenticate(db, user_data.email, user_data.password)
    if not user:
        logger.warning("❌ [AUTH] Échec de connexion")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is suspended. Contact support.",
        )

    access_token = create_access_token(
        data={"sub": user.email, "user_id": user.id},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info(f"✅ [AUTH] Connexion réussie (ID: {user.id})")

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
    }


@router.get("/me", response_model=UserResponse)
def read_users_me(current_user: User = Depends(get_current_user_from_token)):
    return current_user


# ==================== CLÉS API MARCHAND ====================

@router.get("/api-tokens", response_model=List[ApiTokenResponse])
def list_api_tokens(
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    return UserService.list_api_tokens(db, current_user)


@router.post("/api-tokens", response_model=ApiTokenCreated)
@limiter.limit(AUTH_LIMIT)
def create_api_token(
    request: Request,
    token_data: ApiTokenCreate,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    try:
        return UserService.create_api_token(db, current_user, token_data.name, token_data.mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/api-tokens/{token_id}")
def revoke_api_token(
    token_id: int,
    current_user: User = Depends(get_current_user_from_token),
    db: Session = Depends(get_db),
):
    if not UserService.revoke_api_token(db, current_user, token_id):
        raise HTTPException(status_code=404, detail="API token not found")
    return {"success": True, "message": "API token revoked"}
