"""
Fixtures partagées: base SQLite en mémoire, client FastAPI, comptes et
passerelles préconfigurés.
"""
from decimal import Decimal
import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paywallet.config import settings
from paywallet.database import Base, enable_sqlite_savepoints, get_db
from paywallet.main import app
from paywallet.middleware.rate_limit import limiter
from paywallet.models.gateway_models import GatewaySettings
from paywallet.models.user_models import ApiToken, User, UserRole
from paywallet.services.auth import create_access_token, get_password_hash
from paywallet.services.gateway_registry import seed_default_gateways

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

RAZORPAY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"

engine = enable_sqlite_savepoints(create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
))
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Aucun identifiant .env ne doit fuiter dans les tests."""
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", None)
    monkeypatch.setattr(settings, "RAZORPAY_KEY_SECRET", None)
    monkeypatch.setattr(settings, "RAZORPAY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "PAYMENT_SECRET_TEST", "test_secret_key")
    monkeypatch.setattr(settings, "PAYMENT_SECRET_LIVE", None)
    limiter.enabled = False
    yield


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    seed_default_gateways(session)
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    # Même session que le test: les assertions voient les commits des routes
    def override_get_db():
        try:
            yield db
        finally:
            db.rollback()

    app.dependency_overrides[get_db] = override_get_db
    # Sans "with": le lifespan (create_all sur la vraie base) ne tourne pas
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, email="merchant@example.com", balance="0", role=UserRole.USER, full_name="Asha Merchant"):
    user = User(
        full_name=full_name,
        email=email,
        phone="9876543210",
        password_hash=get_password_hash("secret123"),
        balance=Decimal(balance),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _auth_headers(user):
    token = create_access_token({"sub": user.email, "user_id": user.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    def factory(**kwargs):
        return _make_user(db, **kwargs)
    return factory


@pytest.fixture
def auth_headers():
    return _auth_headers


@pytest.fixture
def user(db):
    return _make_user(db, balance="1000.00")


@pytest.fixture
def admin(db):
    return _make_user(db, email="admin@example.com", role=UserRole.ADMIN, full_name="Admin")


@pytest.fixture
def user_headers(user):
    return _auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return _auth_headers(admin)


@pytest.fixture
def api_token(db, user):
    token = ApiToken(
        user_id=user.id,
        name="Boutique",
        key_id="sat_test_0123456789abcdef01234567",
        secret_key="s3cr3t_api_key",
        mode="test",
        status="active",
    )
    db.add(token)
    db.commit()
    db.refresh(token)
    return token


@pytest.fixture
def api_auth(api_token):
    return (api_token.key_id, api_token.secret_key)


@pytest.fixture
def configure_gateway(db):
    def configure(gateway, key_id, key_secret, active=True, enabled=True):
        row = db.query(GatewaySettings).filter(GatewaySettings.gateway == gateway).first()
        row.key_id = key_id
        row.key_secret = key_secret
        row.is_enabled = enabled
        if active:
            db.query(GatewaySettings).update({GatewaySettings.is_active: False})
        row.is_active = active
        db.commit()
        db.refresh(row)
        return row
    return configure


@pytest.fixture
def razorpay_active(configure_gateway):
    return configure_gateway("razorpay", "rzp_test_key", RAZORPAY_SECRET)


@pytest.fixture
def session_factory(db):
    """Sessions indépendantes sur la même base (unités de travail séparées)."""
    return TestingSessionLocal
