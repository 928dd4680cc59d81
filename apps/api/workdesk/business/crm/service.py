from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workdesk import events
from workdesk.business.billing.models import Invoice
from workdesk.business.billing.schemas import InvoiceRead
from workdesk.business.billing.service import BillingService, billing_service
from workdesk.business.crm.models import Lead, Quote
from workdesk.business.crm.repository import LeadRepository, QuoteRepository
from workdesk.business.crm.schemas import (
    LeadCreate,
    LeadRead,
    LeadStageChange,
    QuoteConversionResult,
    QuoteCreate,
    QuoteRead,
    QuoteStatusChange,
)
from workdesk.business.users.repository import UserRepository
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import BusinessRuleError, NotFoundError
from workdesk.platform.ledger.applier import to_money
from workdesk.platform.security.context import Actor
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.platform.workflow.machine import LEAD_MACHINE, QUOTE_MACHINE, LeadStage, QuoteStatus
from workdesk.services.audit import write_audit_log


logger = logging.getLogger("workdesk.crm")

_CLOSED_STAGES = frozenset({LeadStage.WON, LeadStage.LOST})
_QUOTE_TIMESTAMPS = {
    QuoteStatus.SENT: "sent_at",
    QuoteStatus.ACCEPTED: "accepted_at",
    QuoteStatus.REJECTED: "rejected_at",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class LeadsService:
    repository: LeadRepository = LeadRepository()
    users: UserRepository = UserRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def create_lead(self, session: Session, actor: Actor, dto: LeadCreate) -> LeadRead:
        self.gate.authorize(actor, Resource.LEADS, Action.CREATE)
        assignee = dto.assigned_to_id or actor.user_id
        if assignee != actor.user_id and self.users.find(session, actor, assignee) is None:  # type: ignore[arg-type]
            raise NotFoundError("user", assignee)

        lead = Lead(
            company_id=actor.company_id,
            name=dto.name.strip(),
            organization=dto.organization,
            email=dto.email,
            phone=dto.phone,
            source=dto.source,
            value=to_money(dto.value) if dto.value is not None else None,
            stage=LeadStage.NEW.value,
            assigned_to_id=assignee,
            created_by_id=actor.user_id,
        )
        session.add(lead)
        session.flush()
        write_audit_log(session, actor, "CREATE", "Lead", lead.id, {"name": lead.name})
        session.commit()
        session.refresh(lead)
        events.publish(
            {
                "event_type": "lead.created",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"lead_id": str(lead.id), "assigned_to_id": lead.assigned_to_id},
            }
        )
        return LeadRead.model_validate(lead)

    def get_lead(self, session: Session, actor: Actor, lead_id: uuid.UUID) -> LeadRead:
        self.gate.authorize(actor, Resource.LEADS, Action.READ)
        return LeadRead.model_validate(self.repository.get(session, actor, lead_id))

    def list_leads(
        self,
        session: Session,
        actor: Actor,
        *,
        stage: LeadStage | None = None,
        assigned_to_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[LeadRead]:
        self.gate.authorize(actor, Resource.LEADS, Action.READ)
        conditions: list[Any] = []
        if stage is not None:
            conditions.append(Lead.stage == stage.value)
        if assigned_to_id is not None:
            conditions.append(Lead.assigned_to_id == assigned_to_id)
        rows = self.repository.list(session, actor, *conditions, limit=limit, offset=offset)
        return [LeadRead.model_validate(row) for row in rows]

    def move_lead_stage(self, session: Session, actor: Actor, lead_id: uuid.UUID, dto: LeadStageChange) -> LeadRead:
        outcome: dict[str, str] = {}

        def attempt(_: int) -> Lead:
            lead = self.repository.get(session, actor, lead_id)
            self.gate.authorize(actor, Resource.LEADS, Action.UPDATE, resource_owner_id=lead.assigned_to_id)
            LEAD_MACHINE.transition(lead.stage, dto.stage)
            outcome["from_stage"] = lead.stage

            values: dict[str, Any] = {"stage": dto.stage.value, "updated_at": utcnow()}
            if dto.stage in _CLOSED_STAGES:
                values["closed_at"] = utcnow()
            guarded_update(
                session,
                Lead,
                entity="lead",
                entity_id=lead.id,
                row_version=lead.row_version,
                values=values,
            )
            write_audit_log(
                session,
                actor,
                "UPDATE_STAGE",
                "Lead",
                lead.id,
                {"from_stage": lead.stage, "to_stage": dto.stage.value},
            )
            session.commit()
            return lead

        lead = run_with_retry(session, attempt, entity="lead")
        session.refresh(lead)
        logger.info(
            "lead.stage_changed",
            extra={
                "entity_type": "lead",
                "entity_id": str(lead.id),
                "from_status": outcome["from_stage"],
                "to_status": lead.stage,
                "user_id": actor.user_id,
            },
        )
        events.publish(
            {
                "event_type": f"lead.{lead.stage.lower()}" if lead.stage in _CLOSED_STAGES else "lead.stage_changed",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"lead_id": str(lead.id), "from_stage": outcome["from_stage"], "to_stage": lead.stage},
            }
        )
        return LeadRead.model_validate(lead)


@dataclass(slots=True)
class QuotesService:
    repository: QuoteRepository = QuoteRepository()
    leads: LeadRepository = LeadRepository()
    billing: BillingService = field(default_factory=lambda: billing_service)
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def create_quote(self, session: Session, actor: Actor, dto: QuoteCreate) -> QuoteRead:
        owner_id: str | None = None
        if dto.lead_id is not None:
            owner_id = self.leads.get(session, actor, dto.lead_id).assigned_to_id
        self.gate.authorize(actor, Resource.LEADS, Action.UPDATE, resource_owner_id=owner_id)

        quote = Quote(
            company_id=actor.company_id,
            quote_number=self._next_number(session, actor.company_id or ""),
            lead_id=dto.lead_id,
            title=dto.title.strip(),
            client_name=dto.client_name.strip(),
            total=to_money(dto.total),
            valid_until=dto.valid_until,
            notes=dto.notes,
            status=QuoteStatus.DRAFT.value,
            created_by_id=actor.user_id,
        )
        session.add(quote)
        session.flush()
        write_audit_log(session, actor, "CREATE", "Quote", quote.id, {"total": str(quote.total)})
        session.commit()
        session.refresh(quote)
        events.publish(
            {
                "event_type": "quote.created",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"quote_id": str(quote.id), "lead_id": str(quote.lead_id) if quote.lead_id else None},
            }
        )
        return QuoteRead.model_validate(quote)

    def get_quote(self, session: Session, actor: Actor, quote_id: uuid.UUID) -> QuoteRead:
        self.gate.authorize(actor, Resource.LEADS, Action.READ)
        return QuoteRead.model_validate(self.repository.get(session, actor, quote_id))

    def list_quotes(
        self,
        session: Session,
        actor: Actor,
        *,
        status: QuoteStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[QuoteRead]:
        self.gate.authorize(actor, Resource.LEADS, Action.READ)
        conditions = [Quote.status == status.value] if status is not None else []
        rows = self.repository.list(session, actor, *conditions, limit=limit, offset=offset)
        return [QuoteRead.model_validate(row) for row in rows]

    def change_quote_status(
        self,
        session: Session,
        actor: Actor,
        quote_id: uuid.UUID,
        dto: QuoteStatusChange,
    ) -> QuoteRead:
        if dto.status == QuoteStatus.CONVERTED:
            raise BusinessRuleError(
                "quotes become CONVERTED only by converting them to an invoice",
                rule="conversion_required",
            )

        def attempt(_: int) -> Quote:
            quote = self.repository.get(session, actor, quote_id)
            self.gate.authorize(actor, Resource.LEADS, Action.UPDATE, resource_owner_id=quote.created_by_id)
            QUOTE_MACHINE.transition(quote.status, dto.status)

            values: dict[str, Any] = {"status": dto.status.value, "updated_at": utcnow()}
            stamp = _QUOTE_TIMESTAMPS.get(dto.status)
            if stamp is not None:
                values[stamp] = utcnow()
            guarded_update(
                session,
                Quote,
                entity="quote",
                entity_id=quote.id,
                row_version=quote.row_version,
                values=values,
            )
            write_audit_log(
                session,
                actor,
                "UPDATE_STATUS",
                "Quote",
                quote.id,
                {"from_status": quote.status, "to_status": dto.status.value},
            )
            session.commit()
            return quote

        quote = run_with_retry(session, attempt, entity="quote")
        session.refresh(quote)
        events.publish(
            {
                "event_type": "quote.status_changed",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"quote_id": str(quote.id), "status": quote.status},
            }
        )
        return QuoteRead.model_validate(quote)

    def convert_quote_to_invoice(self, session: Session, actor: Actor, quote_id: uuid.UUID) -> QuoteConversionResult:
        """Turn an ACCEPTED quote into a DRAFT invoice for the same total."""

        self.gate.authorize(actor, Resource.INVOICES, Action.CREATE)

        def attempt(_: int) -> tuple[Quote, Invoice]:
            quote = self.repository.get(session, actor, quote_id)
            self.gate.authorize(actor, Resource.LEADS, Action.UPDATE, resource_owner_id=quote.created_by_id)
            QUOTE_MACHINE.transition(quote.status, QuoteStatus.CONVERTED)

            invoice = self.billing.add_draft_invoice(
                session,
                actor,
                client_name=quote.client_name,
                total=quote.total,
                notes=f"From quote {quote.quote_number}: {quote.title}",
                quote_id=quote.id,
            )
            guarded_update(
                session,
                Quote,
                entity="quote",
                entity_id=quote.id,
                row_version=quote.row_version,
                values={
                    "status": QuoteStatus.CONVERTED.value,
                    "converted_at": utcnow(),
                    "invoice_id": invoice.id,
                    "updated_at": utcnow(),
                },
            )
            write_audit_log(session, actor, "CONVERT", "Quote", quote.id, {"invoice_id": str(invoice.id)})
            session.commit()
            return quote, invoice

        quote, invoice = run_with_retry(session, attempt, entity="quote")
        session.refresh(quote)
        session.refresh(invoice)
        events.publish(
            {
                "event_type": "quote.converted",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"quote_id": str(quote.id), "invoice_id": str(invoice.id), "total": str(invoice.total)},
            }
        )
        return QuoteConversionResult(quote=QuoteRead.model_validate(quote), invoice=InvoiceRead.model_validate(invoice))

    def _next_number(self, session: Session, company_id: str) -> str:
        counter = session.scalar(select(func.count()).select_from(Quote).where(Quote.company_id == company_id)) or 0
        return f"QUO-{date.today().year}-{counter + 1:05d}"


leads_service = LeadsService()
quotes_service = QuotesService()
