from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.business.crm.schemas import (
    LeadCreate,
    LeadRead,
    LeadStageChange,
    QuoteConversionResult,
    QuoteCreate,
    QuoteRead,
    QuoteStatusChange,
)
from workdesk.business.crm.service import leads_service, quotes_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor
from workdesk.platform.workflow.machine import LeadStage, QuoteStatus


leads_router = APIRouter(prefix="/leads", tags=["crm.leads"])
quotes_router = APIRouter(prefix="/quotes", tags=["crm.quotes"])


@leads_router.post("", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> LeadRead:
    return leads_service.create_lead(db, actor, dto)


@leads_router.get("", response_model=list[LeadRead])
def list_leads(
    stage: LeadStage | None = Query(default=None),
    assigned_to_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[LeadRead]:
    return leads_service.list_leads(db, actor, stage=stage, assigned_to_id=assigned_to_id, limit=limit, offset=offset)


@leads_router.get("/{lead_id}", response_model=LeadRead)
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> LeadRead:
    return leads_service.get_lead(db, actor, lead_id)


@leads_router.post("/{lead_id}/stage", response_model=LeadRead)
def move_lead_stage(
    lead_id: uuid.UUID,
    dto: LeadStageChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> LeadRead:
    return leads_service.move_lead_stage(db, actor, lead_id, dto)


@quotes_router.post("", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
def create_quote(
    dto: QuoteCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> QuoteRead:
    return quotes_service.create_quote(db, actor, dto)


@quotes_router.get("", response_model=list[QuoteRead])
def list_quotes(
    status_filter: QuoteStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[QuoteRead]:
    return quotes_service.list_quotes(db, actor, status=status_filter, limit=limit, offset=offset)


@quotes_router.get("/{quote_id}", response_model=QuoteRead)
def get_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> QuoteRead:
    return quotes_service.get_quote(db, actor, quote_id)


@quotes_router.post("/{quote_id}/status", response_model=QuoteRead)
def change_quote_status(
    quote_id: uuid.UUID,
    dto: QuoteStatusChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> QuoteRead:
    return quotes_service.change_quote_status(db, actor, quote_id, dto)


@quotes_router.post("/{quote_id}/convert", response_model=QuoteConversionResult, status_code=status.HTTP_201_CREATED)
def convert_quote(
    quote_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> QuoteConversionResult:
    return quotes_service.convert_quote_to_invoice(db, actor, quote_id)
