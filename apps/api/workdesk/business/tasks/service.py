from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from workdesk import events
from workdesk.business.tasks.models import Task
from workdesk.business.tasks.repository import TaskRepository
from workdesk.business.tasks.schemas import TaskCreate, TaskRead, TaskUpdate
from workdesk.business.users.repository import UserRepository
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import NotFoundError
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.platform.workflow.machine import TASK_MACHINE, TaskStatus
from workdesk.services.audit import write_audit_log
from workdesk.services.notifications import NotificationKind, get_notification_dispatcher


logger = logging.getLogger("workdesk.tasks")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _owner_for(task: Task, actor: Actor) -> str:
    # A task belongs to both its creator and its assignee.
    if actor.user_id in {task.created_by_id, task.assigned_to_id}:
        return actor.user_id
    return task.created_by_id


@dataclass(slots=True)
class TasksService:
    repository: TaskRepository = TaskRepository()
    users: UserRepository = UserRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def create_task(self, session: Session, actor: Actor, dto: TaskCreate) -> TaskRead:
        self.gate.authorize(actor, Resource.TASKS, Action.CREATE)
        if dto.assigned_to_id is not None:
            self._require_user(session, actor, dto.assigned_to_id)

        task = Task(
            company_id=actor.company_id,
            title=dto.title.strip(),
            description=dto.description,
            priority=dto.priority,
            due_date=dto.due_date,
            status=TaskStatus.PENDING.value,
            created_by_id=actor.user_id,
            assigned_to_id=dto.assigned_to_id,
        )
        session.add(task)
        session.flush()
        write_audit_log(session, actor, "CREATE", "Task", task.id, {"title": task.title})
        session.commit()
        session.refresh(task)

        if task.assigned_to_id and task.assigned_to_id != actor.user_id:
            self._notify_assigned(session, actor, task)
        events.publish(
            {
                "event_type": "task.created",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"task_id": str(task.id), "assigned_to_id": task.assigned_to_id},
            }
        )
        return TaskRead.model_validate(task)

    def get_task(self, session: Session, actor: Actor, task_id: uuid.UUID) -> TaskRead:
        self.gate.authorize(actor, Resource.TASKS, Action.READ)
        query = self.repository.apply_visibility(
            self.repository.apply_scope_query(select(Task), actor).where(Task.id == task_id), actor
        )
        task = session.scalar(query)
        if task is None:
            raise NotFoundError("task", task_id)
        return TaskRead.model_validate(task)

    def list_tasks(
        self,
        session: Session,
        actor: Actor,
        *,
        status: TaskStatus | None = None,
        assigned_to_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TaskRead]:
        self.gate.authorize(actor, Resource.TASKS, Action.READ)
        query = self.repository.apply_visibility(self.repository.apply_scope_query(select(Task), actor), actor)
        if status is not None:
            query = query.where(Task.status == status.value)
        if assigned_to_id is not None:
            query = query.where(Task.assigned_to_id == assigned_to_id)
        rows = session.scalars(query.order_by(Task.created_at.desc()).limit(limit).offset(offset)).all()
        return [TaskRead.model_validate(row) for row in rows]

    def update_task(self, session: Session, actor: Actor, task_id: uuid.UUID, dto: TaskUpdate) -> TaskRead:
        provided = dto.model_fields_set
        if "assigned_to_id" in provided and dto.assigned_to_id is not None:
            self._require_user(session, actor, dto.assigned_to_id)

        outcome: dict[str, Any] = {}

        def attempt(_: int) -> Task:
            task = self.repository.get(session, actor, task_id)
            self.gate.authorize(actor, Resource.TASKS, Action.UPDATE, resource_owner_id=_owner_for(task, actor))

            changes: dict[str, Any] = {}
            for name in ("title", "description", "priority", "due_date", "assigned_to_id"):
                if name in provided:
                    changes[name] = getattr(dto, name)
            if "title" in changes:
                changes["title"] = (changes["title"] or "").strip() or task.title

            previous_status = TaskStatus(task.status)
            if dto.status is not None and dto.status != previous_status:
                changes["status"] = TASK_MACHINE.transition(previous_status, dto.status).value
                if dto.status == TaskStatus.COMPLETED:
                    changes["completed_at"] = utcnow()

            outcome["previous_status"] = previous_status
            outcome["previous_assignee"] = task.assigned_to_id
            if not changes:
                return task

            changes["updated_at"] = utcnow()
            guarded_update(
                session,
                Task,
                entity="task",
                entity_id=task.id,
                row_version=task.row_version,
                values=changes,
            )
            write_audit_log(
                session,
                actor,
                "UPDATE",
                "Task",
                task.id,
                {key: str(value) if value is not None else None for key, value in changes.items()},
            )
            session.commit()
            return task

        task = run_with_retry(session, attempt, entity="task")
        session.refresh(task)

        previous_status: TaskStatus = outcome["previous_status"]
        if task.status != previous_status:
            logger.info(
                "task.status_changed",
                extra={
                    "entity_type": "task",
                    "entity_id": str(task.id),
                    "from_status": previous_status.value,
                    "to_status": task.status,
                    "user_id": actor.user_id,
                },
            )
        if task.status == TaskStatus.COMPLETED and previous_status != TaskStatus.COMPLETED:
            if task.created_by_id != actor.user_id:
                get_notification_dispatcher().notify(
                    session,
                    company_id=task.company_id,
                    user_id=task.created_by_id,
                    kind=NotificationKind.TASK_COMPLETED,
                    title="Task completed",
                    message=f"{actor.name or actor.user_id} completed \"{task.title}\"",
                    link=f"/tasks/{task.id}",
                )
            events.publish(
                {
                    "event_type": "task.completed",
                    "actor_user_id": actor.user_id,
                    "company_id": actor.company_id,
                    "payload": {"task_id": str(task.id), "created_by_id": task.created_by_id},
                }
            )
        if (
            task.assigned_to_id
            and task.assigned_to_id != outcome["previous_assignee"]
            and task.assigned_to_id != actor.user_id
        ):
            self._notify_assigned(session, actor, task)

        return TaskRead.model_validate(task)

    def delete_task(self, session: Session, actor: Actor, task_id: uuid.UUID) -> None:
        task = self.repository.get(session, actor, task_id)
        self.gate.authorize(actor, Resource.TASKS, Action.DELETE, resource_owner_id=task.created_by_id)
        if task.created_by_id != actor.user_id and not actor.at_least(Role.ADMIN):
            self.gate.deny(actor, Resource.TASKS, Action.DELETE, "not_creator")

        session.delete(task)
        write_audit_log(session, actor, "DELETE", "Task", task_id, {"title": task.title})
        session.commit()
        events.publish(
            {
                "event_type": "task.deleted",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"task_id": str(task_id)},
            }
        )

    def _require_user(self, session: Session, actor: Actor, user_id: str) -> None:
        if self.users.find(session, actor, user_id) is None:  # type: ignore[arg-type]
            raise NotFoundError("user", user_id)

    @staticmethod
    def _notify_assigned(session: Session, actor: Actor, task: Task) -> None:
        get_notification_dispatcher().notify(
            session,
            company_id=task.company_id,
            user_id=task.assigned_to_id or "",
            kind=NotificationKind.TASK_ASSIGNED,
            title="New task assigned",
            message=f"{actor.name or actor.user_id} assigned you \"{task.title}\"",
            link=f"/tasks/{task.id}",
        )


tasks_service = TasksService()
