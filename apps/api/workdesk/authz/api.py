from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.authz.schemas import EffectivePermissionRead, PermissionOverrideRead, PermissionOverrideUpsert
from workdesk.authz.service import permission_override_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor
from workdesk.platform.security.matrix import Action, Resource


admin_router = APIRouter(prefix="/admin", tags=["admin.authz"])


@admin_router.put("/permission-overrides", response_model=PermissionOverrideRead)
def upsert_override(
    dto: PermissionOverrideUpsert,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> PermissionOverrideRead:
    return permission_override_service.upsert_override(db, actor, dto)


@admin_router.get("/permission-overrides", response_model=list[PermissionOverrideRead])
def list_overrides(
    user_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[PermissionOverrideRead]:
    return permission_override_service.list_overrides(db, actor, user_id=user_id)


@admin_router.delete(
    "/permission-overrides/{override_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
def delete_override(
    override_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    permission_override_service.delete_override(db, actor, override_id)


@admin_router.get("/permissions/effective", response_model=EffectivePermissionRead)
def effective_permission(
    user_id: str = Query(min_length=1),
    resource: Resource = Query(),
    action: Action = Query(),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> EffectivePermissionRead:
    return permission_override_service.effective_permission(db, actor, user_id, resource, action)
