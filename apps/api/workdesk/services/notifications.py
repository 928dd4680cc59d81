from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workdesk.models.notification import Notification
from workdesk.platform.errors import NotFoundError
from workdesk.platform.security.context import Actor


logger = logging.getLogger("workdesk.notifications")


class NotificationKind:
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_COMPLETED = "TASK_COMPLETED"
    EXPENSE_DECIDED = "EXPENSE_DECIDED"
    INVOICE_PAID = "INVOICE_PAID"


class NotificationDispatcher(Protocol):
    """Delivers a user notification after the triggering change has committed.

    Delivery is best-effort: a failure is logged and never undoes the change.
    """

    def notify(
        self,
        session: Session,
        *,
        company_id: str,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None:
        ...


class DbNotificationDispatcher:
    def notify(
        self,
        session: Session,
        *,
        company_id: str,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None:
        try:
            session.add(
                Notification(
                    company_id=company_id,
                    user_id=user_id,
                    kind=kind,
                    title=title,
                    message=message,
                    link=link,
                )
            )
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("notification.failed", extra={"user_id": user_id, "event_name": kind})


class InMemoryNotificationDispatcher:
    def __init__(self) -> None:
        self.sent: list[dict[str, str | None]] = []

    def notify(
        self,
        session: Session,
        *,
        company_id: str,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        link: str | None = None,
    ) -> None:
        self.sent.append(
            {
                "company_id": company_id,
                "user_id": user_id,
                "kind": kind,
                "title": title,
                "message": message,
                "link": link,
            }
        )


_DISPATCHER: NotificationDispatcher = DbNotificationDispatcher()
_DISPATCHER_LOCK = Lock()


def get_notification_dispatcher() -> NotificationDispatcher:
    return _DISPATCHER


def set_notification_dispatcher(dispatcher: NotificationDispatcher) -> None:
    global _DISPATCHER
    with _DISPATCHER_LOCK:
        _DISPATCHER = dispatcher


def list_notifications(session: Session, actor: Actor, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = select(Notification).where(
        Notification.user_id == actor.user_id,
        Notification.company_id == actor.company_id,
    )
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    return list(session.scalars(query.order_by(Notification.created_at.desc()).limit(limit)))


def mark_notification_read(session: Session, actor: Actor, notification_id: uuid.UUID) -> Notification:
    notification = session.scalar(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == actor.user_id,
            Notification.company_id == actor.company_id,
        )
    )
    if notification is None:
        raise NotFoundError("notification", notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        session.commit()
        session.refresh(notification)
    return notification


def mark_all_notifications_read(session: Session, actor: Actor) -> int:
    result = session.execute(
        update(Notification)
        .where(
            Notification.user_id == actor.user_id,
            Notification.company_id == actor.company_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    session.commit()
    return int(result.rowcount or 0)
