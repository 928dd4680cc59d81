from __future__ import annotations

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workdesk.platform.workflow.machine import TaskStatus


TaskPriority = Literal["LOW", "MEDIUM", "HIGH", "URGENT"]


class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: TaskPriority = "MEDIUM"
    due_date: date | None = None
    assigned_to_id: str | None = None


class TaskUpdate(BaseModel):
    """Partial update; only fields that were sent are applied."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    assigned_to_id: str | None = None
    status: TaskStatus | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    title: str
    description: str | None
    status: TaskStatus
    priority: str
    due_date: date | None
    created_by_id: str
    assigned_to_id: str | None
    completed_at: datetime | None
    row_version: int
    created_at: datetime
    updated_at: datetime
