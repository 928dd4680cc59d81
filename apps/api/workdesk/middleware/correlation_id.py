from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from workdesk.context import reset_correlation_id, set_correlation_id


CORRELATION_HEADER = "x-correlation-id"


def _incoming_correlation_id(request: Request) -> str:
    supplied = (request.headers.get(CORRELATION_HEADER) or "").strip()
    if supplied and len(supplied) <= 128:
        return supplied
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Binds one correlation id to the request, its logs, spans and response."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = _incoming_correlation_id(request)
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
