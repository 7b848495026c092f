"""
SERVEUR PRINCIPAL PAYWALLET - portefeuille multi-passerelles et API marchand
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from paywallet import __version__
from paywallet.config import settings
from paywallet.database import Base, SessionLocal, engine
from paywallet.exceptions import SERVER_ERROR, MerchantAPIError, PaymentError
from paywallet.middleware.rate_limit import limiter
from paywallet.middleware.security import security_headers_middleware
from paywallet import models  # noqa: F401  (enregistre les tables sur Base)
from paywallet.routes import (
    auth_router,
    payments_router,
    qr_router,
    gateways_router,
    payout_requests_router,
    withdrawals_router,
    merchant_api_router,
)
from paywallet.services.gateway_registry import seed_default_gateways

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"
MERCHANT_PREFIX = f"{API_PREFIX}/v1"


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Démarrage de PayWallet...")
    Base.metadata.create_all(bind=engine)
    logger.info(f"✅ Tables prêtes: {', '.join(Base.metadata.tables.keys())}")

    db = SessionLocal()
    try:
        seed_default_gateways(db)
    finally:
        db.close()

    yield
    logger.info("🛑 Arrêt de PayWallet")


# ==================== APPLICATION FASTAPI ====================
app = FastAPI(
    title="PayWallet API",
    description="Portefeuille multi-passerelles (Razorpay, PayU, Cashfree) et API marchand",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Rate limiting global
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Headers de sécurité
app.middleware("http")(security_headers_middleware)


# ==================== GESTION DES ERREURS ====================
@app.exception_handler(MerchantAPIError)
async def merchant_api_error_handler(request: Request, exc: MerchantAPIError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    """Erreur métier: {detail, ...extra} avec le code porté par l'exception"""
    if exc.status_code >= 500:
        logger.error(f"❌ {type(exc).__name__} sur {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"⚠️ {type(exc).__name__} sur {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "detail": exc.message, **exc.extra},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Erreur inattendue: journalisée côté serveur, message générique au client"""
    logger.exception(f"❌ ERREUR CRITIQUE - Path: {request.method} {request.url.path}")

    if request.url.path.startswith(MERCHANT_PREFIX):
        return JSONResponse(status_code=500, content=MerchantAPIError(
            SERVER_ERROR, "Internal server error", status_code=500, source="internal",
        ).to_dict())

    error_message = f"{type(exc).__name__}: {exc}" if settings.DEBUG else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "detail": error_message,
            "error_id": f"ERR_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ==================== ROUTEURS ====================
app.include_router(auth_router, prefix=API_PREFIX, tags=["Authentication"])
app.include_router(payments_router, prefix=API_PREFIX, tags=["Payments"])
app.include_router(qr_router, prefix=API_PREFIX, tags=["QR"])
app.include_router(gateways_router, prefix=API_PREFIX, tags=["Gateways"])
app.include_router(payout_requests_router, prefix=API_PREFIX, tags=["Payouts"])
app.include_router(withdrawals_router, prefix=API_PREFIX, tags=["Withdrawals"])
app.include_router(merchant_api_router, prefix=API_PREFIX, tags=["Merchant API"])


# ==================== ROUTES DE BASE ====================
@app.get("/")
def read_root():
    return {
        "message": "Bienvenue sur l'API PayWallet 💳",
        "version": __version__,
        "docs": "/api/docs",
        "endpoints": {
            "auth": f"{API_PREFIX}/auth",
            "payment": f"{API_PREFIX}/payment",
            "qr": f"{API_PREFIX}/qr",
            "gateway": f"{API_PREFIX}/gateway",
            "payout": f"{API_PREFIX}/payout",
            "merchant": MERCHANT_PREFIX,
        },
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "mode": settings.PAYMENT_MODE,
    }
