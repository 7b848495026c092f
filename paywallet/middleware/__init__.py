from .rate_limit import limiter
from .security import security_headers_middleware

__all__ = ["limiter", "security_headers_middleware"]
