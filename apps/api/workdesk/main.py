from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from workdesk.api.routes import router as api_router
from workdesk.context import get_correlation_id
from workdesk.core.config import get_settings
from workdesk.events import DomainEvent, event_bus
from workdesk.logging import configure_logging
from workdesk.middleware.correlation_id import CorrelationIdMiddleware
from workdesk.middleware.request_logging import RequestLoggingMiddleware
from workdesk.otel import get_fastapi_server_request_hook, setup_otel
from workdesk.platform.errors import DomainError
from workdesk.platform.security.policies import DbOverrideBackend, InMemoryOverrideBackend, set_override_backend


configure_logging(get_settings().log_level)
logger = logging.getLogger("workdesk.lifecycle")
_subscriptions_registered = False

_audited_event_types = [
    "task.completed",
    "expense.decided",
    "invoice.payment_recorded",
    "quote.converted",
    "user.role_changed",
]


def _on_system_started(event: DomainEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_domain_event(event: DomainEvent) -> None:
    logger.info("domain_event", extra={"event_name": event.name})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _audited_event_types:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title="Workdesk API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(correlation_id))


settings = get_settings()
backend_choice = settings.authz_policy_backend.lower()
if backend_choice == "auto":
    backend_choice = "inmemory" if settings.app_env.lower() == "test" else "db"

if backend_choice == "db":
    set_override_backend(DbOverrideBackend())
else:
    set_override_backend(InMemoryOverrideBackend())

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
