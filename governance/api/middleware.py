"""Middleware for request processing and observability."""

from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id and the acting identity to every request's log context.

    - Uses the X-Correlation-Id header if present, otherwise a new UUID4
    - Binds ``actor_id`` from X-Actor-Id when supplied
    - Echoes X-Correlation-Id on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-Id", str(uuid4()))
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        actor_id = request.headers.get("X-Actor-Id")
        if actor_id:
            structlog.contextvars.bind_contextvars(actor_id=actor_id)

        response = await call_next(request)
        response.headers["X-Correlation-Id"] = correlation_id
        return response
