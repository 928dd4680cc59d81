from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workdesk import events
from workdesk.business.billing.models import Payment
from workdesk.business.users.models import User
from workdesk.core.auth import get_current_actor
from workdesk.core.config import get_settings
from workdesk.core.database import Base, get_db
from workdesk.main import app
from workdesk.models.audit import AuditLog
from workdesk.models.notification import Notification
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.policies import InMemoryOverrideBackend, set_override_backend
from workdesk.services.audit import DbAuditSink, set_audit_sink
from workdesk.services.notifications import DbNotificationDispatcher, set_notification_dispatcher


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    session.add_all(
        [
            User(id="mgr-1", company_id="co-1", email="morgan@example.com", name="Morgan", role="MANAGER"),
            User(id="wrk-1", company_id="co-1", email="wren@example.com", name="Wren", role="WORKER"),
        ]
    )
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    set_override_backend(InMemoryOverrideBackend())
    set_audit_sink(DbAuditSink())
    set_notification_dispatcher(DbNotificationDispatcher())
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    events.published_events.clear()


class ActorSwitch:
    def __init__(self) -> None:
        self.user_id = "mgr-1"
        self.role = Role.MANAGER

    def use(self, user_id: str, role: Role) -> None:
        self.user_id = user_id
        self.role = role


@pytest.fixture()
def current() -> ActorSwitch:
    return ActorSwitch()


@pytest.fixture()
def client(db_session: Session, current: ActorSwitch) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor(request: Request) -> Actor:
        return Actor(
            user_id=current.user_id,
            role=current.role,
            company_id="co-1",
            correlation_id=getattr(request.state, "correlation_id", None),
            name=current.user_id.title(),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_actor] = override_get_current_actor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _sent_invoice(client: TestClient, total: str = "100") -> str:
    created = client.post("/invoices", json={"client_name": "Acme", "total": total})
    assert created.status_code == 201
    invoice_id = created.json()["id"]
    sent = client.post(f"/invoices/{invoice_id}/status", json={"status": "SENT"})
    assert sent.status_code == 200
    return invoice_id


def test_forbidden_request_returns_envelope(client: TestClient, current: ActorSwitch) -> None:
    current.use("wrk-1", Role.WORKER)

    response = client.get("/invoices", headers={"X-Correlation-Id": "corr-403"})

    assert response.status_code == 403
    assert response.json() == {
        "code": "NOT_AUTHORIZED",
        "message": "not authorized to read invoices",
        "details": {"resource": "invoices", "action": "read", "reason": "role_denied"},
        "correlation_id": "corr-403",
    }
    assert response.headers["x-correlation-id"] == "corr-403"


def test_missing_entity_returns_not_found(client: TestClient) -> None:
    response = client.get("/tasks/00000000-0000-4000-8000-000000000000")

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "NOT_FOUND"
    assert body["details"]["entity"] == "task"
    assert body["correlation_id"] == response.headers["x-correlation-id"]


def test_invalid_transition_returns_conflict(client: TestClient) -> None:
    task = client.post("/tasks", json={"title": "Ship it"}).json()

    response = client.patch(f"/tasks/{task['id']}", json={"status": "COMPLETED"})

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"
    assert response.json()["details"] == {"entity": "task", "from_status": "PENDING", "to_status": "COMPLETED"}


def test_task_lifecycle_over_http(client: TestClient, db_session: Session, current: ActorSwitch) -> None:
    task = client.post("/tasks", json={"title": "Report", "assigned_to_id": "wrk-1"}).json()
    assert task["status"] == "PENDING"

    current.use("wrk-1", Role.WORKER)
    assert client.patch(f"/tasks/{task['id']}", json={"status": "IN_PROGRESS"}).status_code == 200
    done = client.patch(f"/tasks/{task['id']}", json={"status": "COMPLETED"})
    assert done.status_code == 200
    assert done.json()["completed_at"] is not None

    inbox = client.get("/notifications").json()
    assert [item["kind"] for item in inbox] == ["TASK_ASSIGNED"]

    current.use("mgr-1", Role.MANAGER)
    inbox = client.get("/notifications?unread_only=true").json()
    assert [item["kind"] for item in inbox] == ["TASK_COMPLETED"]
    read = client.post(f"/notifications/{inbox[0]['id']}/read")
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert client.post("/notifications/read-all").json() == {"updated_count": 0}
    assert db_session.scalars(select(Notification)).all()


def test_overpayment_returns_invalid_amount(client: TestClient, db_session: Session) -> None:
    invoice_id = _sent_invoice(client)

    response = client.post(
        f"/invoices/{invoice_id}/payments",
        json={"amount": "150"},
        headers={"X-Correlation-Id": "corr-422"},
    )

    assert response.status_code == 422
    assert response.json() == {
        "code": "INVALID_AMOUNT",
        "message": "payment amount 150.00 exceeds outstanding balance 100.00",
        "details": {"amount": "150.00", "bound": "100.00"},
        "correlation_id": "corr-422",
    }
    assert db_session.scalars(select(Payment)).all() == []


def test_payments_settle_invoice_over_http(client: TestClient) -> None:
    invoice_id = _sent_invoice(client)

    first = client.post(f"/invoices/{invoice_id}/payments", json={"amount": "40", "method": "CARD"})
    assert first.status_code == 201
    assert first.json()["invoice"]["status"] == "PARTIAL"

    second = client.post(f"/invoices/{invoice_id}/payments", json={"amount": "60"})
    assert second.json()["invoice"]["status"] == "PAID"
    assert second.json()["invoice"]["balance"] == "0.00"

    payments = client.get(f"/invoices/{invoice_id}/payments").json()
    assert [item["amount"] for item in payments] == ["40.00", "60.00"]


def test_unknown_body_fields_are_rejected(client: TestClient) -> None:
    response = client.post("/tasks", json={"title": "Extra", "status": "COMPLETED"})

    assert response.status_code == 422


def test_correlation_id_reaches_audit_and_events(client: TestClient, db_session: Session) -> None:
    response = client.post("/tasks", json={"title": "Traced"}, headers={"X-Correlation-Id": "corr-audit-1"})
    assert response.status_code == 201

    row = db_session.scalar(select(AuditLog).where(AuditLog.entity_id == response.json()["id"]))
    assert row is not None
    assert row.correlation_id == "corr-audit-1"
    created = [item for item in events.published_events if item["event_type"] == "task.created"]
    assert created[-1]["correlation_id"] == "corr-audit-1"


def test_role_change_escalation_is_forbidden(client: TestClient) -> None:
    response = client.put("/users/wrk-1/role", json={"role": "ADMIN"})

    assert response.status_code == 403
    assert response.json()["details"]["reason"] == "manager_cannot_grant_privileged"


def test_quote_conversion_over_http(client: TestClient) -> None:
    quote = client.post("/quotes", json={"title": "Retainer", "client_name": "Acme", "total": "900"}).json()
    for status in ("SENT", "ACCEPTED"):
        assert client.post(f"/quotes/{quote['id']}/status", json={"status": status}).status_code == 200

    converted = client.post(f"/quotes/{quote['id']}/convert")

    assert converted.status_code == 201
    assert converted.json()["quote"]["status"] == "CONVERTED"
    assert converted.json()["invoice"]["status"] == "DRAFT"
    assert converted.json()["invoice"]["total"] == "900.00"


def test_oversized_payment_amount_is_rejected(client: TestClient, db_session: Session) -> None:
    invoice_id = _sent_invoice(client)

    response = client.post(f"/invoices/{invoice_id}/payments", json={"amount": "1e27"})

    assert response.status_code == 422
    assert db_session.scalars(select(Payment)).all() == []
