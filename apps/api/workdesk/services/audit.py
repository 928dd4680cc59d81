from __future__ import annotations

import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Protocol

from sqlalchemy.orm import Session

from workdesk.context import get_correlation_id
from workdesk.models.audit import AuditLog
from workdesk.platform.security.context import Actor


class AuditSink(Protocol):
    """Append-only destination for audit entries.

    Entries are written inside the caller's transaction so they commit or
    roll back together with the change they describe.
    """

    def record(
        self,
        session: Session,
        actor: Actor,
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        ...


class DbAuditSink:
    def record(
        self,
        session: Session,
        actor: Actor,
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        session.add(
            AuditLog(
                company_id=actor.company_id,
                actor_id=actor.user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                event_metadata=payload or {},
                correlation_id=actor.correlation_id or get_correlation_id(),
            )
        )


class InMemoryAuditSink:
    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def record(
        self,
        session: Session,
        actor: Actor,
        *,
        action: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        self.entries.append(
            {
                "id": str(uuid.uuid4()),
                "actor_id": actor.user_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "payload": payload or {},
                "correlation_id": actor.correlation_id or get_correlation_id(),
                "occurred_at": datetime.now(timezone.utc).isoformat(),
            }
        )


_AUDIT_SINK: AuditSink = DbAuditSink()
_AUDIT_LOCK = Lock()


def get_audit_sink() -> AuditSink:
    return _AUDIT_SINK


def set_audit_sink(sink: AuditSink) -> None:
    global _AUDIT_SINK
    with _AUDIT_LOCK:
        _AUDIT_SINK = sink


def write_audit_log(
    session: Session,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: object,
    payload: dict[str, Any] | None = None,
) -> None:
    get_audit_sink().record(
        session,
        actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        payload=payload,
    )
