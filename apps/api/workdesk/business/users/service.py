from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from workdesk import events
from workdesk.business.users.models import User
from workdesk.business.users.repository import UserRepository
from workdesk.business.users.schemas import RoleChangeRequest, UserRead
from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import NotFoundError
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import Action, Resource
from workdesk.services.audit import write_audit_log


logger = logging.getLogger("workdesk.users")


@dataclass(slots=True)
class UsersService:
    repository: UserRepository = UserRepository()
    gate: PermissionGate = field(default_factory=lambda: permission_gate)

    def list_users(self, session: Session, actor: Actor, *, limit: int = 100, offset: int = 0) -> list[UserRead]:
        self.gate.authorize(actor, Resource.USERS, Action.READ)
        rows = self.repository.list(session, actor, limit=limit, offset=offset)
        return [UserRead.model_validate(row) for row in rows]

    def get_user(self, session: Session, actor: Actor, user_id: str) -> UserRead:
        self.gate.authorize(actor, Resource.USERS, Action.READ, resource_owner_id=user_id)
        return UserRead.model_validate(self.repository.get(session, actor, user_id))  # type: ignore[arg-type]

    def change_user_role(self, session: Session, actor: Actor, user_id: str, dto: RoleChangeRequest) -> UserRead:
        def attempt(_: int) -> User:
            target = self.repository.get(session, actor, user_id)  # type: ignore[arg-type]
            previous = Role.parse(target.role)
            # Escalation rules run ahead of the generic lookup so overrides cannot relax them.
            self.gate.guard_role_assignment(actor, previous, dto.role)
            self.gate.authorize(actor, Resource.USERS, Action.UPDATE, resource_owner_id=target.id)

            guarded_update(
                session,
                User,
                entity="user",
                entity_id=target.id,  # type: ignore[arg-type]
                row_version=target.row_version,
                values={"role": dto.role.value, "updated_at": datetime.now(timezone.utc)},
            )
            write_audit_log(
                session,
                actor,
                "UPDATE_ROLE",
                "User",
                target.id,
                {"from_role": previous.value, "to_role": dto.role.value},
            )
            session.commit()
            return target

        updated = run_with_retry(session, attempt, entity="user")
        session.refresh(updated)
        logger.info(
            "user.role_changed",
            extra={"entity_type": "user", "entity_id": updated.id, "user_id": actor.user_id, "to_status": updated.role},
        )
        events.publish(
            {
                "event_type": "user.role_changed",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"user_id": updated.id, "role": updated.role},
            }
        )
        return UserRead.model_validate(updated)

    def delete_user(self, session: Session, actor: Actor, user_id: str) -> None:
        target = self.repository.find(session, actor, user_id)  # type: ignore[arg-type]
        self.gate.guard_user_deletion(actor, user_id, Role.parse(target.role) if target is not None else None)
        self.gate.authorize(actor, Resource.USERS, Action.DELETE)
        if target is None:
            raise NotFoundError("user", user_id)

        session.delete(target)
        write_audit_log(session, actor, "DELETE", "User", user_id, {"email": target.email})
        session.commit()

        events.publish(
            {
                "event_type": "user.deleted",
                "actor_user_id": actor.user_id,
                "company_id": actor.company_id,
                "payload": {"user_id": user_id},
            }
        )


users_service = UsersService()
