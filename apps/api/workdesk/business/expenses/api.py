from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.business.expenses.schemas import ExpenseCreate, ExpenseDecision, ExpenseRead, ExpenseUpdate
from workdesk.business.expenses.service import expenses_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor
from workdesk.platform.workflow.machine import ExpenseStatus


router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseRead, status_code=status.HTTP_201_CREATED)
def create_expense(
    dto: ExpenseCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ExpenseRead:
    return expenses_service.create_expense(db, actor, dto)


@router.get("", response_model=list[ExpenseRead])
def list_expenses(
    status_filter: ExpenseStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[ExpenseRead]:
    return expenses_service.list_expenses(db, actor, status=status_filter, limit=limit, offset=offset)


@router.get("/{expense_id}", response_model=ExpenseRead)
def get_expense(
    expense_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ExpenseRead:
    return expenses_service.get_expense(db, actor, expense_id)


@router.patch("/{expense_id}", response_model=ExpenseRead)
def update_expense(
    expense_id: uuid.UUID,
    dto: ExpenseUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ExpenseRead:
    return expenses_service.update_expense(db, actor, expense_id, dto)


@router.post("/{expense_id}/decision", response_model=ExpenseRead)
def decide_expense(
    expense_id: uuid.UUID,
    dto: ExpenseDecision,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> ExpenseRead:
    return expenses_service.decide_expense(db, actor, expense_id, dto)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
def delete_expense(
    expense_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    expenses_service.delete_expense(db, actor, expense_id)
