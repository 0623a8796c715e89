"""Request context middleware: correlation ids and access logging.

The correlation id is read from ``X-Correlation-ID`` or generated, stored
in contextvars, bound to every log record emitted while the request is
processed, and echoed back on the response.
"""

import time

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from typedapi.api.constants import CORRELATION_ID_HEADER
from typedapi.core.context import RequestContext, generate_correlation_id


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlation id propagation and one access log line per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Process the request with context management.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response with correlation ID header.
        """
        correlation_id = (
            request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        )
        RequestContext.set_correlation_id(correlation_id)
        started = time.perf_counter()

        try:
            with logger.contextualize(correlation_id=correlation_id):
                response = await call_next(request)
                response.headers[CORRELATION_ID_HEADER] = correlation_id
                logger.info(
                    "{} {} -> {}",
                    request.method,
                    request.url.path,
                    response.status_code,
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )
                return response
        finally:
            RequestContext.clear()
