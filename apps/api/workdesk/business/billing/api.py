from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.business.billing.schemas import (
    InvoiceCreate,
    InvoiceRead,
    InvoiceStatusChange,
    PaymentCreate,
    PaymentRead,
    PaymentResult,
    RefreshOverdueResponse,
)
from workdesk.business.billing.service import billing_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor
from workdesk.platform.workflow.machine import InvoiceStatus


router = APIRouter(prefix="/invoices", tags=["billing"])


@router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    dto: InvoiceCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    return billing_service.create_invoice(db, actor, dto)


@router.get("", response_model=list[InvoiceRead])
def list_invoices(
    status_filter: InvoiceStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[InvoiceRead]:
    return billing_service.list_invoices(db, actor, status=status_filter, limit=limit, offset=offset)


@router.post("/refresh-overdue", response_model=RefreshOverdueResponse)
def refresh_overdue(
    as_of: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> RefreshOverdueResponse:
    return billing_service.refresh_overdue(db, actor, today=as_of)


@router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    return billing_service.get_invoice(db, actor, invoice_id)


@router.post("/{invoice_id}/status", response_model=InvoiceRead)
def change_invoice_status(
    invoice_id: uuid.UUID,
    dto: InvoiceStatusChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> InvoiceRead:
    return billing_service.change_invoice_status(db, actor, invoice_id, dto)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
def delete_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    billing_service.delete_invoice(db, actor, invoice_id)


@router.post("/{invoice_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def record_payment(
    invoice_id: uuid.UUID,
    dto: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PaymentResult:
    return billing_service.record_payment(db, actor, invoice_id, dto)


@router.get("/{invoice_id}/payments", response_model=list[PaymentRead])
def list_payments(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PaymentRead]:
    return billing_service.list_payments(db, actor, invoice_id)
