from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import NoReturn

from workdesk.metrics import observe_authz_denied
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.errors import AuthorizationError
from workdesk.platform.security.matrix import (
    OWNER_GRANTABLE,
    ROLE_MATRIX,
    Action,
    Grant,
    Resource,
    RoleRow,
    role_default,
)
from workdesk.platform.security.policies import OverrideBackend, get_override_backend


logger = logging.getLogger("workdesk.authz")

_PRIVILEGED_ROLES = frozenset({Role.ADMIN, Role.MANAGER})


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    reason: str


@dataclass(slots=True)
class PermissionGate:
    """Resolves whether an actor may perform an action on a resource.

    Resolution order: explicit override, then the role default matrix, then
    the ownership grant for owner-grantable actions. Guards for role
    assignment and user deletion are separate entry points that callers run
    before ``authorize`` and that no override can relax.
    """

    matrix: Mapping[Role, RoleRow] = field(default_factory=lambda: ROLE_MATRIX)
    backend: OverrideBackend | None = None

    def decide(
        self,
        actor: Actor,
        resource: str,
        action: str,
        resource_owner_id: str | None = None,
    ) -> Decision:
        try:
            resource_key = Resource(str(resource))
            action_key = Action(str(action))
        except ValueError:
            return Decision(False, "unknown_permission")

        backend = self.backend or get_override_backend()
        override = backend.lookup(actor, resource_key.value, action_key.value)
        if override is not None:
            return Decision(override, "override_granted" if override else "override_denied")

        grant = role_default(actor.role, resource_key, action_key, matrix=self.matrix)
        if grant == Grant.ALLOW:
            return Decision(True, "role_allowed")
        if grant == Grant.OWN:
            if resource_owner_id is None or resource_owner_id == actor.user_id:
                return Decision(True, "own_resource")
            return Decision(False, "not_owner")

        if (
            not actor.is_guest
            and resource_owner_id is not None
            and resource_owner_id == actor.user_id
            and (resource_key, action_key) in OWNER_GRANTABLE
        ):
            return Decision(True, "owner_grant")
        return Decision(False, "role_denied")

    def can(
        self,
        actor: Actor,
        resource: str,
        action: str,
        resource_owner_id: str | None = None,
    ) -> bool:
        return self.decide(actor, resource, action, resource_owner_id).allowed

    def authorize(
        self,
        actor: Actor,
        resource: str,
        action: str,
        resource_owner_id: str | None = None,
    ) -> None:
        decision = self.decide(actor, resource, action, resource_owner_id)
        if not decision.allowed:
            self.deny(actor, resource, action, decision.reason)

    def guard_role_assignment(self, actor: Actor, target_current_role: Role, new_role: Role) -> None:
        """Reject role changes that would escalate privileges."""

        if actor.is_guest:
            self.deny(actor, Resource.USERS, Action.UPDATE, "guest_cannot_assign_roles")
        if actor.role == Role.MANAGER:
            if target_current_role in _PRIVILEGED_ROLES:
                self.deny(actor, Resource.USERS, Action.UPDATE, "manager_cannot_edit_privileged")
            if new_role in _PRIVILEGED_ROLES:
                self.deny(actor, Resource.USERS, Action.UPDATE, "manager_cannot_grant_privileged")

        actor_rank = actor.role.rank or 0
        if (target_current_role.rank or 0) > actor_rank:
            self.deny(actor, Resource.USERS, Action.UPDATE, "target_above_actor")
        if (new_role.rank or 0) > actor_rank:
            self.deny(actor, Resource.USERS, Action.UPDATE, "role_above_actor")

    def guard_user_deletion(self, actor: Actor, target_user_id: str, target_role: Role | None = None) -> None:
        if target_user_id == actor.user_id:
            self.deny(actor, Resource.USERS, Action.DELETE, "self_deletion")
        if target_role is not None and (target_role.rank or 0) > (actor.role.rank or 0):
            self.deny(actor, Resource.USERS, Action.DELETE, "target_above_actor")

    @staticmethod
    def deny(actor: Actor, resource: str, action: str, reason: str) -> NoReturn:
        observe_authz_denied(str(resource), str(action), reason)
        logger.warning(
            "authz.denied",
            extra={
                "resource": str(resource),
                "action": str(action),
                "reason": reason,
                "user_id": actor.user_id,
            },
        )
        raise AuthorizationError(str(resource), str(action), reason)


permission_gate = PermissionGate()
