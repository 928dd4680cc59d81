from workdesk.business.tasks.api import router
from workdesk.business.tasks.models import Task
from workdesk.business.tasks.schemas import TaskCreate, TaskRead, TaskUpdate
from workdesk.business.tasks.service import TasksService, tasks_service

__all__ = [
    "router",
    "Task",
    "TaskCreate",
    "TaskRead",
    "TaskUpdate",
    "TasksService",
    "tasks_service",
]
