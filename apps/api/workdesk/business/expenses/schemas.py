from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workdesk.platform.workflow.machine import ExpenseStatus


ExpenseCategory = Literal["TRAVEL", "MEALS", "SUPPLIES", "SOFTWARE", "EQUIPMENT", "OTHER"]


class ExpenseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str = Field(min_length=1, max_length=255)
    category: ExpenseCategory = "OTHER"
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    incurred_on: date
    receipt_url: str | None = Field(default=None, max_length=512)


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    description: str | None = Field(default=None, min_length=1, max_length=255)
    category: ExpenseCategory | None = None
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    incurred_on: date | None = None
    receipt_url: str | None = Field(default=None, max_length=512)


class ExpenseDecision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["APPROVED", "REJECTED"]
    note: str | None = Field(default=None, max_length=1000)


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    user_id: str
    description: str
    category: str
    amount: Decimal
    incurred_on: date
    receipt_url: str | None
    status: ExpenseStatus
    decided_by_id: str | None
    decided_at: datetime | None
    decision_note: str | None
    row_version: int
    created_at: datetime
