from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workdesk.platform.workflow.machine import InvoiceStatus


PaymentMethod = Literal["CASH", "BANK_TRANSFER", "CARD", "CHECK", "OTHER"]


class InvoiceCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    client_name: str = Field(min_length=1, max_length=255)
    total: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    due_date: date | None = None
    notes: str | None = None


class InvoiceStatusChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: InvoiceStatus


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    invoice_number: str
    client_name: str
    quote_id: UUID | None
    total: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    issued_at: datetime | None
    due_date: date | None
    notes: str | None
    created_by_id: str
    row_version: int
    created_at: datetime


class PaymentCreate(BaseModel):
    """Payment request. The amount is validated against the balance by the ledger, not here."""

    model_config = ConfigDict(extra="forbid")

    # Sub-cent precision is allowed through; the ledger rounds it to cents.
    amount: Decimal = Field(max_digits=12)
    method: PaymentMethod = "BANK_TRANSFER"
    reference: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    paid_on: date | None = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: str
    reference: str | None
    notes: str | None
    paid_on: date
    created_by_id: str
    created_at: datetime


class PaymentResult(BaseModel):
    payment: PaymentRead
    invoice: InvoiceRead


class RefreshOverdueResponse(BaseModel):
    updated_count: int
