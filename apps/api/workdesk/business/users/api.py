from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.business.users.schemas import RoleChangeRequest, UserRead
from workdesk.business.users.service import users_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor


router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserRead])
def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[UserRead]:
    return users_service.list_users(db, actor, limit=limit, offset=offset)


@router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    return users_service.get_user(db, actor, user_id)


@router.put("/{user_id}/role", response_model=UserRead)
def change_user_role(
    user_id: str,
    dto: RoleChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> UserRead:
    return users_service.change_user_role(db, actor, user_id, dto)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    users_service.delete_user(db, actor, user_id)
