from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workdesk.authz.models import PermissionOverride
from workdesk.authz.schemas import EffectivePermissionRead, PermissionOverrideRead, PermissionOverrideUpsert
from workdesk.business.users.repository import UserRepository
from workdesk.platform.errors import ConflictError, NotFoundError
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.services.audit import write_audit_log


logger = logging.getLogger("workdesk.authz")


@dataclass(slots=True)
class PermissionOverrideService:
    users: UserRepository = UserRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def upsert_override(self, session: Session, actor: Actor, dto: PermissionOverrideUpsert) -> PermissionOverrideRead:
        self.gate.authorize(actor, Resource.PERMISSIONS, Action.UPDATE)
        target = self.users.get(session, actor, dto.user_id)  # type: ignore[arg-type]

        row = session.scalar(
            select(PermissionOverride).where(
                PermissionOverride.user_id == target.id,
                PermissionOverride.resource == dto.resource.value,
                PermissionOverride.action == dto.action.value,
            )
        )
        previous = None if row is None else row.granted
        if row is None:
            row = PermissionOverride(
                company_id=target.company_id,
                user_id=target.id,
                resource=dto.resource.value,
                action=dto.action.value,
                granted=dto.granted,
                created_by_id=actor.user_id,
            )
            session.add(row)
        else:
            row.granted = dto.granted

        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            raise ConflictError("permission_override", f"{target.id}:{dto.resource.value}.{dto.action.value}")

        write_audit_log(
            session,
            actor,
            "UPSERT",
            "PermissionOverride",
            row.id,
            {
                "user_id": target.id,
                "resource": dto.resource.value,
                "action": dto.action.value,
                "granted": dto.granted,
                "previous": previous,
            },
        )
        session.commit()
        session.refresh(row)
        logger.info(
            "authz.override_saved",
            extra={"resource": row.resource, "action": row.action, "user_id": actor.user_id, "entity_id": str(row.id)},
        )
        return PermissionOverrideRead.model_validate(row)

    def list_overrides(self, session: Session, actor: Actor, *, user_id: str | None = None) -> list[PermissionOverrideRead]:
        self.gate.authorize(actor, Resource.PERMISSIONS, Action.READ)
        query = select(PermissionOverride).where(PermissionOverride.company_id == actor.company_id)
        if user_id is not None:
            query = query.where(PermissionOverride.user_id == user_id)
        rows = session.scalars(
            query.order_by(PermissionOverride.user_id, PermissionOverride.resource, PermissionOverride.action)
        ).all()
        return [PermissionOverrideRead.model_validate(row) for row in rows]

    def delete_override(self, session: Session, actor: Actor, override_id: uuid.UUID) -> None:
        self.gate.authorize(actor, Resource.PERMISSIONS, Action.DELETE)
        row = session.scalar(
            select(PermissionOverride).where(
                PermissionOverride.id == override_id,
                PermissionOverride.company_id == actor.company_id,
            )
        )
        if row is None:
            raise NotFoundError("permission_override", override_id)

        session.delete(row)
        write_audit_log(
            session,
            actor,
            "DELETE",
            "PermissionOverride",
            override_id,
            {"user_id": row.user_id, "resource": row.resource, "action": row.action},
        )
        session.commit()

    def effective_permission(
        self,
        session: Session,
        actor: Actor,
        user_id: str,
        resource: Resource,
        action: Action,
    ) -> EffectivePermissionRead:
        """Resolve what the gate would decide for another user of the same company."""

        self.gate.authorize(actor, Resource.PERMISSIONS, Action.READ)
        target = self.users.get(session, actor, user_id)  # type: ignore[arg-type]
        subject = Actor(user_id=target.id, role=Role.parse(target.role), company_id=target.company_id)
        decision = self.gate.decide(subject, resource, action)
        return EffectivePermissionRead(
            user_id=target.id,
            resource=resource,
            action=action,
            allowed=decision.allowed,
            reason=decision.reason,
        )


permission_override_service = PermissionOverrideService()
