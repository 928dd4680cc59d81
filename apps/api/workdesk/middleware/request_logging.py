from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from workdesk.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("workdesk.request")


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        fields: dict[str, object] = {"method": request.method}

        try:
            response = await call_next(request)
        except Exception:
            fields.update(
                path=resolve_http_path_label(request),
                status_code=500,
                duration_ms=_elapsed_ms(started),
            )
            self._observe(fields)
            logger.error("http.error", exc_info=True, extra=fields)
            raise

        # The matched route is only in scope once the router has run.
        fields.update(
            path=resolve_http_path_label(request),
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )
        user_id = getattr(request.state, "user_id", None)
        if user_id:
            fields["user_id"] = user_id
        self._observe(fields)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "http.request", extra=fields)
        return response

    @staticmethod
    def _observe(fields: dict[str, object]) -> None:
        observe_http_request(
            method=str(fields["method"]),
            path=str(fields["path"]),
            status=int(fields["status_code"]),  # type: ignore[arg-type]
            duration=float(fields["duration_ms"]) / 1000,  # type: ignore[arg-type]
        )
