"""
Middleware de sécurité: headers HTTP sur toutes les réponses
"""
from fastapi import Request
import logging

logger = logging.getLogger(__name__)

# Réponses à ne jamais mettre en cache
SENSITIVE_PATHS = [
    "/api/payment",
    "/api/payout",
    "/api/gateway",
    "/api/auth",
    "/api/v1",
]


def is_sensitive_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in SENSITIVE_PATHS)


async def security_headers_middleware(request: Request, call_next):
    """Ajouter des headers de sécurité"""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"

    if is_sensitive_path(request.url.path):
        response.headers["Cache-Control"] = "no-store, max-age=0"

    return response
