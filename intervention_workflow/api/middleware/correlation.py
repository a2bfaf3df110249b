"""
Correlation ID Middleware

Tags every request with a correlation ID; it follows the request into logs,
transition events and audit records.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from ...utils.logger import set_correlation_id, get_logger
from ...utils.idgen import generate_correlation_id
from ...utils.time import utc_now

logger = get_logger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds correlation ID to all requests.

    - Reuses the caller's X-Correlation-Id header when present
    - Sets it in the logging context
    - Echoes it in the response headers and logs request timing
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = (
            request.headers.get("X-Correlation-Id") or generate_correlation_id()
        )
        set_correlation_id(correlation_id)
        start_time = utc_now()

        response = await call_next(request)

        response.headers["X-Correlation-Id"] = correlation_id
        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"duration_ms": round(duration_ms, 2), "status_code": response.status_code}
        )
        return response
