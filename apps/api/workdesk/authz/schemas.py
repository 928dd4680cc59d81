from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from workdesk.platform.security.matrix import Action, Resource


class PermissionOverrideUpsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, max_length=64)
    resource: Resource
    action: Action
    granted: bool


class PermissionOverrideRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: str
    user_id: str
    resource: str
    action: str
    granted: bool
    created_by_id: str
    created_at: datetime
    updated_at: datetime


class EffectivePermissionRead(BaseModel):
    user_id: str
    resource: Resource
    action: Action
    allowed: bool
    reason: str
