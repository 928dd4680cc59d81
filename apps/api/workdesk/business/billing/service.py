from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workdesk import events
from workdesk.business.billing.models import Invoice, Payment
from workdesk.business.billing.repository import InvoiceRepository, PaymentRepository
from workdesk.business.billing.schemas import (
    InvoiceCreate,
    InvoiceRead,
    InvoiceStatusChange,
    PaymentCreate,
    PaymentRead,
    PaymentResult,
    RefreshOverdueResponse,
)
from workdesk.metrics import observe_payment_applied, observe_payment_rejected
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import BusinessRuleError, ConflictError
from workdesk.platform.ledger.applier import InvoiceSnapshot, apply_payment, to_money
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.platform.workflow.machine import INVOICE_MACHINE, InvoiceStatus
from workdesk.services.audit import write_audit_log
from workdesk.services.notifications import NotificationKind, get_notification_dispatcher


logger = logging.getLogger("workdesk.billing")

PAYABLE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE})
# Reached only by applying payments, never by a manual status change.
PAYMENT_DRIVEN_STATUSES = frozenset({InvoiceStatus.PARTIAL, InvoiceStatus.PAID})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class BillingService:
    invoice_repository: InvoiceRepository = InvoiceRepository()
    payment_repository: PaymentRepository = PaymentRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def create_invoice(self, session: Session, actor: Actor, dto: InvoiceCreate) -> InvoiceRead:
        self.gate.authorize(actor, Resource.INVOICES, Action.CREATE)
        invoice = self.add_draft_invoice(
            session,
            actor,
            client_name=dto.client_name.strip(),
            total=dto.total,
            due_date=dto.due_date,
            notes=dto.notes,
        )
        session.commit()
        session.refresh(invoice)
        events.publish(
            {
                "event_type": "invoice.created",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"invoice_id": str(invoice.id), "total": str(invoice.total)},
            }
        )
        return InvoiceRead.model_validate(invoice)

    def add_draft_invoice(
        self,
        session: Session,
        actor: Actor,
        *,
        client_name: str,
        total: Decimal,
        due_date: date | None = None,
        notes: str | None = None,
        quote_id: uuid.UUID | None = None,
    ) -> Invoice:
        """Stage a DRAFT invoice in the caller's transaction without committing."""

        amount = to_money(total)
        if amount <= 0:
            raise BusinessRuleError("invoice total must be greater than 0", rule="invoice_total_positive")

        invoice = Invoice(
            company_id=actor.company_id,
            invoice_number=self._next_number(session, actor.company_id or ""),
            client_name=client_name,
            quote_id=quote_id,
            total=amount,
            paid_amount=Decimal("0.00"),
            balance=amount,
            status=InvoiceStatus.DRAFT.value,
            due_date=due_date,
            notes=notes,
            created_by_id=actor.user_id,
        )
        session.add(invoice)
        session.flush()
        write_audit_log(
            session,
            actor,
            "CREATE",
            "Invoice",
            invoice.id,
            {"total": str(amount), "quote_id": str(quote_id) if quote_id else None},
        )
        return invoice

    def get_invoice(self, session: Session, actor: Actor, invoice_id: uuid.UUID) -> InvoiceRead:
        invoice = self.invoice_repository.get(session, actor, invoice_id)
        self.gate.authorize(actor, Resource.INVOICES, Action.READ, resource_owner_id=invoice.created_by_id)
        return InvoiceRead.model_validate(invoice)

    def list_invoices(
        self,
        session: Session,
        actor: Actor,
        *,
        status: InvoiceStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[InvoiceRead]:
        self.gate.authorize(actor, Resource.INVOICES, Action.READ)
        query = self.invoice_repository.apply_scope_query(select(Invoice), actor)
        if not actor.at_least(Role.MANAGER):
            query = query.where(Invoice.created_by_id == actor.user_id)
        if status is not None:
            query = query.where(Invoice.status == status.value)
        rows = session.scalars(query.order_by(Invoice.created_at.desc()).limit(limit).offset(offset)).all()
        return [InvoiceRead.model_validate(row) for row in rows]

    def change_invoice_status(
        self,
        session: Session,
        actor: Actor,
        invoice_id: uuid.UUID,
        dto: InvoiceStatusChange,
    ) -> InvoiceRead:
        self.gate.authorize(actor, Resource.INVOICES, Action.UPDATE)
        if dto.status in PAYMENT_DRIVEN_STATUSES:
            raise BusinessRuleError(
                f"invoice status {dto.status} is set by recording payments",
                rule="payment_driven_status",
                details={"status": dto.status.value},
            )

        outcome: dict[str, str] = {}

        def attempt(_: int) -> Invoice:
            invoice = self.invoice_repository.get(session, actor, invoice_id)
            INVOICE_MACHINE.transition(invoice.status, dto.status)
            outcome["from_status"] = invoice.status

            values: dict[str, object] = {"status": dto.status.value, "updated_at": utcnow()}
            if dto.status == InvoiceStatus.SENT and invoice.issued_at is None:
                values["issued_at"] = utcnow()
            guarded_update(
                session,
                Invoice,
                entity="invoice",
                entity_id=invoice.id,
                row_version=invoice.row_version,
                values=values,
            )
            write_audit_log(
                session,
                actor,
                "UPDATE_STATUS",
                "Invoice",
                invoice.id,
                {"from_status": invoice.status, "to_status": dto.status.value},
            )
            session.commit()
            return invoice

        invoice = run_with_retry(session, attempt, entity="invoice")
        session.refresh(invoice)
        events.publish(
            {
                "event_type": "invoice.status_changed",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {
                    "invoice_id": str(invoice.id),
                    "from_status": outcome["from_status"],
                    "to_status": invoice.status,
                },
            }
        )
        return InvoiceRead.model_validate(invoice)

    def delete_invoice(self, session: Session, actor: Actor, invoice_id: uuid.UUID) -> None:
        invoice = self.invoice_repository.get(session, actor, invoice_id)
        self.gate.authorize(actor, Resource.INVOICES, Action.DELETE, resource_owner_id=invoice.created_by_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise BusinessRuleError(
                "only draft invoices can be deleted",
                rule="invoice_not_draft",
                details={"status": invoice.status},
            )

        session.delete(invoice)
        write_audit_log(session, actor, "DELETE", "Invoice", invoice_id, {"invoice_number": invoice.invoice_number})
        session.commit()
        events.publish(
            {
                "event_type": "invoice.deleted",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"invoice_id": str(invoice_id)},
            }
        )

    def refresh_overdue(self, session: Session, actor: Actor, *, today: date | None = None) -> RefreshOverdueResponse:
        """Move every SENT or PARTIAL invoice past its due date to OVERDUE."""

        self.gate.authorize(actor, Resource.INVOICES, Action.UPDATE)
        cutoff = today or date.today()
        candidates = session.scalars(
            self.invoice_repository.apply_scope_query(select(Invoice), actor)
            .where(
                Invoice.status.in_([InvoiceStatus.SENT.value, InvoiceStatus.PARTIAL.value]),
                Invoice.due_date.is_not(None),
                Invoice.due_date < cutoff,
            )
            .execution_options(populate_existing=True)
        ).all()

        moved: list[Invoice] = []
        for invoice in candidates:
            INVOICE_MACHINE.transition(invoice.status, InvoiceStatus.OVERDUE)
            try:
                guarded_update(
                    session,
                    Invoice,
                    entity="invoice",
                    entity_id=invoice.id,
                    row_version=invoice.row_version,
                    values={"status": InvoiceStatus.OVERDUE.value, "updated_at": utcnow()},
                )
            except ConflictError:
                # A concurrent payment or status change won; the next sweep re-evaluates it.
                logger.info("invoice.overdue_skipped", extra={"entity_type": "invoice", "entity_id": str(invoice.id)})
                continue
            write_audit_log(
                session,
                actor,
                "UPDATE_STATUS",
                "Invoice",
                invoice.id,
                {"from_status": invoice.status, "to_status": InvoiceStatus.OVERDUE.value},
            )
            moved.append(invoice)
        session.commit()

        for invoice in moved:
            events.publish(
                {
                    "event_type": "invoice.overdue",
                    "actor_user_id": actor.user_id,
                    "company_id": actor.company_id,
                    "payload": {"invoice_id": str(invoice.id), "balance": str(invoice.balance)},
                }
            )
        return RefreshOverdueResponse(updated_count=len(moved))

    def record_payment(
        self,
        session: Session,
        actor: Actor,
        invoice_id: uuid.UUID,
        dto: PaymentCreate,
    ) -> PaymentResult:
        """Apply a payment to an invoice and store it.

        The balance update and the Payment row commit together. The update is
        conditional on the row version read in the same attempt; losing a race
        rolls back and re-reads, so the amount is always checked against the
        latest balance.
        """

        self.gate.authorize(actor, Resource.INVOICES, Action.UPDATE)
        outcome: dict[str, InvoiceStatus] = {}

        def attempt(number: int) -> Payment:
            invoice = self.invoice_repository.get(session, actor, invoice_id)
            current = InvoiceStatus(invoice.status)
            if current not in PAYABLE_STATUSES:
                observe_payment_rejected("not_payable")
                raise BusinessRuleError(
                    f"payments are not accepted on {current} invoices",
                    rule="invoice_not_payable",
                    details={"status": current.value},
                )

            snapshot = InvoiceSnapshot.from_invoice(invoice)
            state = apply_payment(snapshot, dto.amount)
            if state.status != current:
                INVOICE_MACHINE.transition(current, state.status)

            guarded_update(
                session,
                Invoice,
                entity="invoice",
                entity_id=invoice.id,
                row_version=snapshot.row_version,
                values={
                    "paid_amount": state.paid_amount,
                    "balance": state.balance,
                    "status": state.status.value,
                    "updated_at": utcnow(),
                },
            )
            payment = Payment(
                company_id=invoice.company_id,
                invoice_id=invoice.id,
                amount=state.paid_amount - snapshot.paid_amount,
                method=dto.method,
                reference=dto.reference,
                notes=dto.notes,
                paid_on=dto.paid_on or date.today(),
                created_by_id=actor.user_id,
            )
            session.add(payment)
            session.flush()
            write_audit_log(
                session,
                actor,
                "CREATE",
                "Payment",
                payment.id,
                {
                    "invoice_id": str(invoice.id),
                    "amount": str(payment.amount),
                    "paid_amount": str(state.paid_amount),
                    "balance": str(state.balance),
                    "attempt": number,
                },
            )
            session.commit()
            outcome["from_status"] = current
            outcome["to_status"] = state.status
            return payment

        payment = run_with_retry(session, attempt, entity="invoice")
        invoice = self.invoice_repository.get(session, actor, invoice_id)
        observe_payment_applied()
        logger.info(
            "invoice.payment_recorded",
            extra={
                "entity_type": "invoice",
                "entity_id": str(invoice.id),
                "from_status": outcome["from_status"].value,
                "to_status": outcome["to_status"].value,
                "user_id": actor.user_id,
            },
        )

        if outcome["to_status"] == InvoiceStatus.PAID:
            get_notification_dispatcher().notify(
                session,
                company_id=invoice.company_id,
                user_id=invoice.created_by_id,
                kind=NotificationKind.INVOICE_PAID,
                title="Invoice paid",
                message=f"Invoice {invoice.invoice_number} has been paid in full",
                link=f"/invoices/{invoice.id}",
            )
        events.publish(
            {
                "event_type": "invoice.payment_recorded",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {
                    "invoice_id": str(invoice.id),
                    "payment_id": str(payment.id),
                    "amount": str(payment.amount),
                    "balance": str(invoice.balance),
                    "status": invoice.status,
                },
            }
        )
        return PaymentResult(
            payment=PaymentRead.model_validate(payment),
            invoice=InvoiceRead.model_validate(invoice),
        )

    def list_payments(self, session: Session, actor: Actor, invoice_id: uuid.UUID) -> list[PaymentRead]:
        invoice = self.invoice_repository.get(session, actor, invoice_id)
        self.gate.authorize(actor, Resource.INVOICES, Action.READ, resource_owner_id=invoice.created_by_id)
        rows = session.scalars(
            select(Payment).where(Payment.invoice_id == invoice.id).order_by(Payment.created_at.asc())
        ).all()
        return [PaymentRead.model_validate(row) for row in rows]

    def _next_number(self, session: Session, company_id: str) -> str:
        counter = session.scalar(select(func.count()).select_from(Invoice).where(Invoice.company_id == company_id)) or 0
        return f"INV-{date.today().year}-{counter + 1:05d}"


billing_service = BillingService()
