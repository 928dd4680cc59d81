from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.errors import AuthorizationError
from workdesk.platform.security.gate import Decision, PermissionGate, permission_gate
from workdesk.platform.security.matrix import OWNER_GRANTABLE, ROLE_MATRIX, Action, Grant, Resource, role_default
from workdesk.platform.security.policies import (
    DbOverrideBackend,
    InMemoryOverrideBackend,
    OverrideBackend,
    get_override_backend,
    set_override_backend,
)
from workdesk.platform.security.repository import BaseRepository

__all__ = [
    "Actor",
    "Role",
    "AuthorizationError",
    "Decision",
    "PermissionGate",
    "permission_gate",
    "OWNER_GRANTABLE",
    "ROLE_MATRIX",
    "Action",
    "Grant",
    "Resource",
    "role_default",
    "OverrideBackend",
    "DbOverrideBackend",
    "InMemoryOverrideBackend",
    "get_override_backend",
    "set_override_backend",
    "BaseRepository",
]
