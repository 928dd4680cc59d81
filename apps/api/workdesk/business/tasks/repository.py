from __future__ import annotations

from typing import Any

from sqlalchemy import or_
from sqlalchemy.sql import Select

from workdesk.business.tasks.models import Task
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.repository import BaseRepository


class TaskRepository(BaseRepository[Task]):
    resource = "tasks"
    entity = "task"
    model = Task

    def apply_visibility(self, query: Select[Any], actor: Actor) -> Select[Any]:
        """Below MANAGER an actor only sees tasks assigned to or created by them."""

        if actor.at_least(Role.MANAGER):
            return query
        return query.where(or_(Task.assigned_to_id == actor.user_id, Task.created_by_id == actor.user_id))
