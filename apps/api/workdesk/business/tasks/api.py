from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from workdesk.business.tasks.schemas import TaskCreate, TaskRead, TaskUpdate
from workdesk.business.tasks.service import tasks_service
from workdesk.core.auth import get_current_actor
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor
from workdesk.platform.workflow.machine import TaskStatus


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TaskRead:
    return tasks_service.create_task(db, actor, dto)


@router.get("", response_model=list[TaskRead])
def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    assigned_to_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[TaskRead]:
    return tasks_service.list_tasks(
        db,
        actor,
        status=status_filter,
        assigned_to_id=assigned_to_id,
        limit=limit,
        offset=offset,
    )


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TaskRead:
    return tasks_service.get_task(db, actor, task_id)


@router.patch("/{task_id}", response_model=TaskRead)
def update_task(
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> TaskRead:
    return tasks_service.update_task(db, actor, task_id, dto)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> None:
    tasks_service.delete_task(db, actor, task_id)
