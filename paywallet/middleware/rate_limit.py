"""
Rate limiter global partagé par tous les routeurs
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Limites par famille d'endpoints
WEBHOOK_LIMIT = "60/minute"
MONEY_LIMIT = "10/minute"
AUTH_LIMIT = "20/minute"
MERCHANT_LIMIT = "120/minute"
