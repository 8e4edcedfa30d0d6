# backend/repfi/middleware/correlation.py
"""
Correlation ID middleware for request tracing.

Correlation ID sources (in order of precedence):
1. X-Correlation-ID header (from client or upstream service)
2. X-Request-ID header
3. Generated UUID

The ID is stored in context for the duration of the request (see
repfi.utils.context) and echoed in the X-Correlation-ID response header.

Client Usage:
    curl -H "X-Correlation-ID: my-trace-123" http://localhost:8000/health
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from repfi.utils.context import set_correlation_id, clear_correlation_id

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Extracts or generates a correlation ID and attaches it to the response."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        correlation_id = self._get_correlation_id(request)
        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()

    @staticmethod
    def _get_correlation_id(request: Request) -> str:
        return (
            request.headers.get(CORRELATION_ID_HEADER)
            or request.headers.get(REQUEST_ID_HEADER)
            or str(uuid.uuid4())
        )
