from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workdesk.business.billing.schemas import InvoiceRead
from workdesk.platform.workflow.machine import LeadStage, QuoteStatus


class LeadCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    organization: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    source: str | None = Field(default=None, max_length=64)
    value: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    assigned_to_id: str | None = None


class LeadStageChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stage: LeadStage


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    name: str
    organization: str | None
    email: str | None
    phone: str | None
    source: str | None
    value: Decimal | None
    stage: LeadStage
    assigned_to_id: str
    created_by_id: str
    closed_at: datetime | None
    row_version: int
    created_at: datetime


class QuoteCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=255)
    client_name: str = Field(min_length=1, max_length=255)
    total: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    lead_id: UUID | None = None
    valid_until: date | None = None
    notes: str | None = None


class QuoteStatusChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: QuoteStatus


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    quote_number: str
    lead_id: UUID | None
    title: str
    client_name: str
    total: Decimal
    valid_until: date | None
    notes: str | None
    status: QuoteStatus
    sent_at: datetime | None
    accepted_at: datetime | None
    rejected_at: datetime | None
    converted_at: datetime | None
    invoice_id: UUID | None
    created_by_id: str
    row_version: int
    created_at: datetime


class QuoteConversionResult(BaseModel):
    quote: QuoteRead
    invoice: InvoiceRead
