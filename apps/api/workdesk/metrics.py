from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authz_denied_total = Counter(
    "authz_denied_total",
    "Authorization denials by resource, action and reason",
    ["resource", "action", "reason"],
)

authz_override_cache_hit_total = Counter(
    "authz_override_cache_hit_total",
    "Permission override cache hits",
)

authz_override_cache_miss_total = Counter(
    "authz_override_cache_miss_total",
    "Permission override cache misses",
)

status_transitions_total = Counter(
    "status_transitions_total",
    "Status transition validations by entity and result",
    ["entity", "result"],
)

ledger_payments_applied_total = Counter(
    "ledger_payments_applied_total",
    "Total invoice payments applied",
)

ledger_payment_rejections_total = Counter(
    "ledger_payment_rejections_total",
    "Total invoice payments rejected by reason",
    ["reason"],
)

optimistic_conflicts_total = Counter(
    "optimistic_conflicts_total",
    "Optimistic concurrency conflicts by entity",
    ["entity"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_denied(resource: str, action: str, reason: str) -> None:
    authz_denied_total.labels(resource=resource, action=action, reason=reason).inc()


def observe_authz_override_cache_hit() -> None:
    authz_override_cache_hit_total.inc()


def observe_authz_override_cache_miss() -> None:
    authz_override_cache_miss_total.inc()


def observe_status_transition(entity: str, result: str) -> None:
    status_transitions_total.labels(entity=entity, result=result).inc()


def observe_payment_applied() -> None:
    ledger_payments_applied_total.inc()


def observe_payment_rejected(reason: str) -> None:
    ledger_payment_rejections_total.labels(reason=reason).inc()


def observe_optimistic_conflict(entity: str) -> None:
    optimistic_conflicts_total.labels(entity=entity).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
