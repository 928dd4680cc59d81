from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from workdesk import events
from workdesk.business.billing import service as billing_module
from workdesk.business.billing.models import Invoice, Payment
from workdesk.business.billing.schemas import InvoiceCreate, InvoiceStatusChange, PaymentCreate
from workdesk.business.billing.service import billing_service
from workdesk.business.tasks.models import Task
from workdesk.core.config import get_settings
from workdesk.core.database import Base
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import ConflictError
from workdesk.platform.ledger.errors import InvalidAmountError
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.policies import InMemoryOverrideBackend, set_override_backend
from workdesk.platform.workflow.machine import InvoiceStatus
from workdesk.services.audit import DbAuditSink, set_audit_sink
from workdesk.services.notifications import (
    DbNotificationDispatcher,
    InMemoryNotificationDispatcher,
    set_notification_dispatcher,
)


@pytest.fixture()
def session_factory(tmp_path: Path) -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'workdesk.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def reset_collaborators() -> Generator[None, None, None]:
    set_override_backend(InMemoryOverrideBackend())
    set_audit_sink(DbAuditSink())
    set_notification_dispatcher(InMemoryNotificationDispatcher())
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    set_override_backend(InMemoryOverrideBackend())
    set_notification_dispatcher(DbNotificationDispatcher())
    events.published_events.clear()
    get_settings.cache_clear()


def _manager() -> Actor:
    return Actor(user_id="mgr-1", role=Role.MANAGER, company_id="co-1", name="Morgan")


def _conflicts(entity: str) -> float:
    return REGISTRY.get_sample_value("optimistic_conflicts_total", {"entity": entity}) or 0.0


def _sent_invoice(factory: sessionmaker[Session], total: str = "100") -> uuid.UUID:
    actor = _manager()
    with factory() as session:
        invoice = billing_service.create_invoice(session, actor, InvoiceCreate(client_name="Acme", total=Decimal(total)))
        billing_service.change_invoice_status(session, actor, invoice.id, InvoiceStatusChange(status=InvoiceStatus.SENT))
        return invoice.id


def _ledger(factory: sessionmaker[Session], invoice_id: uuid.UUID) -> tuple[Invoice, int]:
    with factory() as session:
        invoice = session.get(Invoice, invoice_id)
        assert invoice is not None
        payments = session.scalar(select(func.count()).select_from(Payment).where(Payment.invoice_id == invoice_id))
        session.expunge(invoice)
        return invoice, int(payments or 0)


def test_guarded_update_bumps_version_and_rejects_stale_writes(session_factory: sessionmaker[Session]) -> None:
    with session_factory() as session:
        task = Task(company_id="co-1", title="Stale", created_by_id="mgr-1")
        session.add(task)
        session.commit()

        assert guarded_update(session, Task, entity="task", entity_id=task.id, row_version=1, values={"title": "Fresh"}) == 2
        session.commit()

        with pytest.raises(ConflictError) as exc_info:
            guarded_update(session, Task, entity="task", entity_id=task.id, row_version=1, values={"title": "Lost"})
        session.rollback()

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 409
        session.refresh(task)
        assert task.title == "Fresh"
        assert task.row_version == 2


def test_run_with_retry_gives_up_after_configured_attempts(
    session_factory: sessionmaker[Session],
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setenv("OPTIMISTIC_MAX_ATTEMPTS", "2")
    get_settings.cache_clear()
    caplog.set_level(logging.WARNING, logger="workdesk.concurrency")
    seen: list[int] = []
    before = _conflicts("widget")

    def always_stale(attempt: int) -> None:
        seen.append(attempt)
        raise ConflictError("widget", "w-1")

    with session_factory() as session:
        with pytest.raises(ConflictError):
            run_with_retry(session, always_stale, entity="widget")

    assert seen == [1, 2]
    assert _conflicts("widget") == before + 2
    warnings = [record for record in caplog.records if record.getMessage() == "optimistic.conflict"]
    assert [getattr(record, "attempt", None) for record in warnings] == [1, 2]


def test_run_with_retry_does_not_retry_other_errors(session_factory: sessionmaker[Session]) -> None:
    calls: list[int] = []

    def broken(attempt: int) -> None:
        calls.append(attempt)
        raise InvalidAmountError(Decimal("-1.00"), Decimal("0"))

    with session_factory() as session:
        with pytest.raises(InvalidAmountError):
            run_with_retry(session, broken, entity="invoice", max_attempts=5)

    assert calls == [1]


def test_run_with_retry_returns_once_write_lands(session_factory: sessionmaker[Session]) -> None:
    def flaky(attempt: int) -> str:
        if attempt < 3:
            raise ConflictError("widget", "w-2")
        return "done"

    with session_factory() as session:
        assert run_with_retry(session, flaky, entity="widget", max_attempts=3) == "done"


def test_payment_against_stale_read_retries_and_revalidates(
    session_factory: sessionmaker[Session],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    invoice_id = _sent_invoice(session_factory)
    actor = _manager()
    original = billing_module.apply_payment
    calls = {"count": 0}

    def racing_apply(snapshot, amount):  # type: ignore[no-untyped-def]
        calls["count"] += 1
        if calls["count"] == 1:
            # Another writer lands 60 after this attempt read the invoice.
            with session_factory() as other:
                billing_service.record_payment(other, actor, invoice_id, PaymentCreate(amount=Decimal("60")))
        return original(snapshot, amount)

    monkeypatch.setattr(billing_module, "apply_payment", racing_apply)
    before = _conflicts("invoice")

    with session_factory() as session:
        with pytest.raises(InvalidAmountError) as exc_info:
            billing_service.record_payment(session, actor, invoice_id, PaymentCreate(amount=Decimal("60")))

    assert exc_info.value.bound == Decimal("40.00")
    assert _conflicts("invoice") == before + 1
    invoice, payments = _ledger(session_factory, invoice_id)
    assert payments == 1
    assert invoice.paid_amount == Decimal("60.00")
    assert invoice.balance == Decimal("40.00")
    assert invoice.status == InvoiceStatus.PARTIAL
    assert invoice.row_version == 3


def test_concurrent_payments_never_overdraw_balance(
    session_factory: sessionmaker[Session],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    invoice_id = _sent_invoice(session_factory)
    original = billing_module.apply_payment
    both_read = threading.Barrier(2, timeout=10)
    first_attempts: set[int] = set()

    def synchronized_apply(snapshot, amount):  # type: ignore[no-untyped-def]
        ident = threading.get_ident()
        if ident not in first_attempts:
            first_attempts.add(ident)
            both_read.wait()
        return original(snapshot, amount)

    monkeypatch.setattr(billing_module, "apply_payment", synchronized_apply)
    outcomes: list[object] = []
    outcomes_lock = threading.Lock()

    def pay(user_id: str) -> None:
        actor = Actor(user_id=user_id, role=Role.MANAGER, company_id="co-1")
        with session_factory() as session:
            try:
                result = billing_service.record_payment(session, actor, invoice_id, PaymentCreate(amount=Decimal("60")))
            except (ConflictError, InvalidAmountError) as exc:
                outcome: object = exc
            else:
                outcome = result
        with outcomes_lock:
            outcomes.append(outcome)

    workers = [threading.Thread(target=pay, args=(f"payer-{index}",)) for index in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)

    assert len(outcomes) == 2
    failures = [item for item in outcomes if isinstance(item, (ConflictError, InvalidAmountError))]
    assert len(failures) == 1

    invoice, payments = _ledger(session_factory, invoice_id)
    assert payments == 1
    assert invoice.paid_amount == Decimal("60.00")
    assert invoice.balance == Decimal("40.00")
    assert invoice.status == InvoiceStatus.PARTIAL
