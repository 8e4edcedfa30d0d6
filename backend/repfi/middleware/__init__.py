# backend/repfi/middleware/__init__.py
"""
ASGI middleware for the REPFI comptable API:
- Correlation ID tracking for request tracing
- Rate limiting

Usage:
    from repfi.middleware import CorrelationIdMiddleware, limiter

    app.add_middleware(CorrelationIdMiddleware)
    app.state.limiter = limiter
"""

from repfi.middleware.correlation import CorrelationIdMiddleware
from repfi.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
    SlowAPIMiddleware,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_WRITE,
    RATE_LIMIT_UPLOAD,
    RATE_LIMIT_HEALTH,
)

__all__ = [
    "CorrelationIdMiddleware",
    "limiter",
    "rate_limit_exceeded_handler",
    "SlowAPIMiddleware",
    "RATE_LIMIT_DEFAULT",
    "RATE_LIMIT_WRITE",
    "RATE_LIMIT_UPLOAD",
    "RATE_LIMIT_HEALTH",
]
