"""Correlation context middleware for request tracing.

Every request gets a request id, taken from the caller when supplied. The
id is stored on ``request.state`` for handlers and error bodies, set in the
logging context variables and echoed in the response headers.
"""

from __future__ import annotations

import re
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from storefront.observability.logging import correlation_id_var, request_id_var

# Caller supplied ids are echoed into logs and headers
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _incoming_id(value: str | None) -> str | None:
    if value and _SAFE_ID.match(value):
        return value
    return None


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Middleware for propagating correlation context.

    Headers:
    - x-request-id: Unique ID for this request
    - x-correlation-id: ID for tracking across services (passed through,
      defaults to the request ID)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _incoming_id(request.headers.get("x-request-id")) or str(uuid.uuid4())
        correlation_id = _incoming_id(request.headers.get("x-correlation-id")) or request_id

        request_token = request_id_var.set(request_id)
        correlation_token = correlation_id_var.set(correlation_id)

        try:
            request.state.request_id = request_id
            request.state.correlation_id = correlation_id

            response = await call_next(request)

            response.headers["x-request-id"] = request_id
            response.headers["x-correlation-id"] = correlation_id
            return response
        finally:
            request_id_var.reset(request_token)
            correlation_id_var.reset(correlation_token)
