from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from workdesk.platform.security.context import Role


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    email: str
    name: str
    role: Role
    is_active: bool
    row_version: int
    created_at: datetime


class RoleChangeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role
