from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from workdesk import events
from workdesk.business.expenses.models import Expense
from workdesk.business.expenses.repository import ExpenseRepository
from workdesk.business.expenses.schemas import ExpenseCreate, ExpenseDecision, ExpenseRead, ExpenseUpdate
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import BusinessRuleError, NotFoundError
from workdesk.platform.ledger.applier import to_money
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.platform.workflow.machine import EXPENSE_MACHINE, ExpenseStatus
from workdesk.services.audit import write_audit_log
from workdesk.services.notifications import NotificationKind, get_notification_dispatcher


logger = logging.getLogger("workdesk.expenses")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_pending(expense: Expense) -> None:
    if expense.status != ExpenseStatus.PENDING:
        raise BusinessRuleError(
            f"expense is {expense.status}, only pending expenses can be changed",
            rule="expense_not_pending",
            details={"status": expense.status},
        )


@dataclass(slots=True)
class ExpensesService:
    repository: ExpenseRepository = ExpenseRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def create_expense(self, session: Session, actor: Actor, dto: ExpenseCreate) -> ExpenseRead:
        self.gate.authorize(actor, Resource.EXPENSES, Action.CREATE)
        expense = Expense(
            company_id=actor.company_id,
            user_id=actor.user_id,
            description=dto.description.strip(),
            category=dto.category,
            amount=to_money(dto.amount),
            incurred_on=dto.incurred_on,
            receipt_url=dto.receipt_url,
            status=ExpenseStatus.PENDING.value,
        )
        session.add(expense)
        session.flush()
        write_audit_log(session, actor, "CREATE", "Expense", expense.id, {"amount": str(expense.amount)})
        session.commit()
        session.refresh(expense)
        events.publish(
            {
                "event_type": "expense.created",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"expense_id": str(expense.id), "amount": str(expense.amount)},
            }
        )
        return ExpenseRead.model_validate(expense)

    def get_expense(self, session: Session, actor: Actor, expense_id: uuid.UUID) -> ExpenseRead:
        self.gate.authorize(actor, Resource.EXPENSES, Action.READ)
        query = self.repository.apply_visibility(
            self.repository.apply_scope_query(select(Expense), actor).where(Expense.id == expense_id), actor
        )
        expense = session.scalar(query)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return ExpenseRead.model_validate(expense)

    def list_expenses(
        self,
        session: Session,
        actor: Actor,
        *,
        status: ExpenseStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ExpenseRead]:
        self.gate.authorize(actor, Resource.EXPENSES, Action.READ)
        query = self.repository.apply_visibility(self.repository.apply_scope_query(select(Expense), actor), actor)
        if status is not None:
            query = query.where(Expense.status == status.value)
        rows = session.scalars(query.order_by(Expense.created_at.desc()).limit(limit).offset(offset)).all()
        return [ExpenseRead.model_validate(row) for row in rows]

    def update_expense(self, session: Session, actor: Actor, expense_id: uuid.UUID, dto: ExpenseUpdate) -> ExpenseRead:
        provided = dto.model_fields_set

        def attempt(_: int) -> Expense:
            expense = self.repository.get(session, actor, expense_id)
            self.gate.authorize(actor, Resource.EXPENSES, Action.UPDATE, resource_owner_id=expense.user_id)
            _require_pending(expense)

            changes: dict[str, Any] = {}
            for name in ("description", "category", "incurred_on", "receipt_url"):
                if name in provided and (getattr(dto, name) is not None or name == "receipt_url"):
                    changes[name] = getattr(dto, name)
            if "amount" in provided and dto.amount is not None:
                changes["amount"] = to_money(dto.amount)
            if not changes:
                return expense

            changes["updated_at"] = utcnow()
            guarded_update(
                session,
                Expense,
                entity="expense",
                entity_id=expense.id,
                row_version=expense.row_version,
                values=changes,
            )
            write_audit_log(
                session,
                actor,
                "UPDATE",
                "Expense",
                expense.id,
                {key: str(value) if value is not None else None for key, value in changes.items()},
            )
            session.commit()
            return expense

        expense = run_with_retry(session, attempt, entity="expense")
        session.refresh(expense)
        return ExpenseRead.model_validate(expense)

    def decide_expense(self, session: Session, actor: Actor, expense_id: uuid.UUID, dto: ExpenseDecision) -> ExpenseRead:
        self.gate.authorize(actor, Resource.EXPENSES, Action.APPROVE)
        requested = ExpenseStatus(dto.status)

        def attempt(_: int) -> Expense:
            expense = self.repository.get(session, actor, expense_id)
            EXPENSE_MACHINE.transition(expense.status, requested)

            guarded_update(
                session,
                Expense,
                entity="expense",
                entity_id=expense.id,
                row_version=expense.row_version,
                values={
                    "status": requested.value,
                    "decided_by_id": actor.user_id,
                    "decided_at": utcnow(),
                    "decision_note": dto.note,
                    "updated_at": utcnow(),
                },
            )
            write_audit_log(
                session,
                actor,
                "APPROVE" if requested == ExpenseStatus.APPROVED else "REJECT",
                "Expense",
                expense.id,
                {"status": requested.value, "note": dto.note, "amount": str(expense.amount)},
            )
            session.commit()
            return expense

        expense = run_with_retry(session, attempt, entity="expense")
        session.refresh(expense)
        logger.info(
            "expense.decided",
            extra={
                "entity_type": "expense",
                "entity_id": str(expense.id),
                "from_status": ExpenseStatus.PENDING.value,
                "to_status": expense.status,
                "user_id": actor.user_id,
            },
        )

        if expense.user_id != actor.user_id:
            verdict = "approved" if requested == ExpenseStatus.APPROVED else "rejected"
            get_notification_dispatcher().notify(
                session,
                company_id=expense.company_id,
                user_id=expense.user_id,
                kind=NotificationKind.EXPENSE_DECIDED,
                title=f"Expense {verdict}",
                message=f"Your expense \"{expense.description}\" ({expense.amount}) was {verdict}",
                link=f"/expenses/{expense.id}",
            )
        events.publish(
            {
                "event_type": "expense.decided",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"expense_id": str(expense.id), "status": expense.status},
            }
        )
        return ExpenseRead.model_validate(expense)

    def delete_expense(self, session: Session, actor: Actor, expense_id: uuid.UUID) -> None:
        expense = self.repository.get(session, actor, expense_id)
        self.gate.authorize(actor, Resource.EXPENSES, Action.DELETE, resource_owner_id=expense.user_id)
        # ADMIN and above may remove decided expenses; everyone else only pending ones.
        if not actor.at_least(Role.ADMIN):
            _require_pending(expense)

        session.delete(expense)
        write_audit_log(session, actor, "DELETE", "Expense", expense_id, {"status": expense.status})
        session.commit()
        events.publish(
            {
                "event_type": "expense.deleted",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"expense_id": str(expense_id)},
            }
        )


expenses_service = ExpensesService()
