import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from workdesk.authz.api import admin_router as authz_admin_router
from workdesk.business.billing.api import router as invoices_router
from workdesk.business.crm.api import leads_router, quotes_router
from workdesk.business.expenses.api import router as expenses_router
from workdesk.business.tasks.api import router as tasks_router
from workdesk.business.users.api import router as users_router
from workdesk.core.auth import get_current_actor
from workdesk.core.config import get_settings
from workdesk.core.database import get_db
from workdesk.metrics import generate_metrics_payload, metrics_content_type
from workdesk.platform.security.context import Actor
from workdesk.platform.security.gate import permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.services.notifications import list_notifications, mark_all_notifications_read, mark_notification_read

router = APIRouter()
router.include_router(users_router)
router.include_router(authz_admin_router)
router.include_router(tasks_router)
router.include_router(expenses_router)
router.include_router(leads_router)
router.include_router(quotes_router)
router.include_router(invoices_router)


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    title: str
    message: str
    link: str | None
    is_read: bool
    created_at: datetime
    read_at: datetime | None


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(actor: Actor = Depends(get_current_actor)) -> dict[str, str | None]:
    return {
        "user_id": actor.user_id,
        "role": actor.role.value,
        "company_id": actor.company_id,
        "name": actor.name,
    }


@router.get("/metrics", tags=["system"])
def metrics(actor: Actor = Depends(get_current_actor)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    permission_gate.authorize(actor, Resource.ANALYTICS, Action.READ)
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())


@router.get("/notifications", response_model=list[NotificationRead], tags=["notifications"])
def notifications(
    unread_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> list[NotificationRead]:
    rows = list_notifications(db, actor, unread_only=unread_only)
    return [NotificationRead.model_validate(row) for row in rows]


@router.post("/notifications/{notification_id}/read", response_model=NotificationRead, tags=["notifications"])
def read_notification(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> NotificationRead:
    return NotificationRead.model_validate(mark_notification_read(db, actor, notification_id))


@router.post("/notifications/read-all", tags=["notifications"])
def read_all_notifications(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> dict[str, int]:
    return {"updated_count": mark_all_notifications_read(db, actor)}
