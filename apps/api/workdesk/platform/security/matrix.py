from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType

from workdesk.platform.security.context import Role


class Resource(StrEnum):
    USERS = "users"
    PROJECTS = "projects"
    CLIENTS = "clients"
    LEADS = "leads"
    TASKS = "tasks"
    TIMEENTRIES = "timeentries"
    DOCUMENTS = "documents"
    EXPENSES = "expenses"
    INVOICES = "invoices"
    SETTINGS = "settings"
    ANALYTICS = "analytics"
    PERMISSIONS = "permissions"


class Action(StrEnum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"


class Grant(StrEnum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    OWN = "OWN"


A, D, O = Grant.ALLOW, Grant.DENY, Grant.OWN

RoleRow = Mapping[Resource, Mapping[Action, Grant]]


def _row(create: Grant, read: Grant, update: Grant, delete: Grant, approve: Grant) -> Mapping[Action, Grant]:
    return MappingProxyType(
        {
            Action.CREATE: create,
            Action.READ: read,
            Action.UPDATE: update,
            Action.DELETE: delete,
            Action.APPROVE: approve,
        }
    )


_ALL = _row(A, A, A, A, A)
_NONE = _row(D, D, D, D, D)

_FULL_ACCESS: RoleRow = MappingProxyType({resource: _ALL for resource in Resource})

_MANAGER: RoleRow = MappingProxyType(
    {
        Resource.USERS: _row(D, A, D, D, D),
        Resource.PROJECTS: _row(A, A, A, D, A),
        Resource.CLIENTS: _row(A, A, A, D, A),
        Resource.LEADS: _ALL,
        Resource.TASKS: _ALL,
        Resource.TIMEENTRIES: _row(A, A, A, O, A),
        Resource.DOCUMENTS: _row(A, A, A, O, A),
        Resource.EXPENSES: _row(A, A, O, O, A),
        Resource.INVOICES: _row(A, A, A, D, A),
        Resource.SETTINGS: _row(D, A, O, D, D),
        Resource.ANALYTICS: _row(D, A, D, D, D),
        Resource.PERMISSIONS: _row(D, A, D, D, D),
    }
)

_WORKER: RoleRow = MappingProxyType(
    {
        Resource.USERS: _NONE,
        Resource.PROJECTS: _row(D, A, D, D, D),
        Resource.CLIENTS: _row(D, A, D, D, D),
        Resource.LEADS: _row(A, A, O, D, D),
        Resource.TASKS: _row(A, A, O, D, D),
        Resource.TIMEENTRIES: _row(A, O, O, O, D),
        Resource.DOCUMENTS: _row(A, A, O, O, D),
        Resource.EXPENSES: _row(A, O, O, O, D),
        Resource.INVOICES: _NONE,
        Resource.SETTINGS: _row(D, O, O, D, D),
        Resource.ANALYTICS: _NONE,
        Resource.PERMISSIONS: _NONE,
    }
)

# External contacts (customers) authenticated without an internal role.
_GUEST: RoleRow = MappingProxyType(
    {
        Resource.USERS: _NONE,
        Resource.PROJECTS: _row(D, O, D, D, D),
        Resource.CLIENTS: _row(D, O, D, D, D),
        Resource.LEADS: _NONE,
        Resource.TASKS: _row(D, O, D, D, D),
        Resource.TIMEENTRIES: _NONE,
        Resource.DOCUMENTS: _row(D, O, D, D, D),
        Resource.EXPENSES: _NONE,
        Resource.INVOICES: _row(D, O, D, D, D),
        Resource.SETTINGS: _row(D, O, O, D, D),
        Resource.ANALYTICS: _NONE,
        Resource.PERMISSIONS: _NONE,
    }
)

ROLE_MATRIX: Mapping[Role, RoleRow] = MappingProxyType(
    {
        Role.SUPERADMIN: _FULL_ACCESS,
        Role.ADMIN: _FULL_ACCESS,
        Role.MANAGER: _MANAGER,
        Role.WORKER: _WORKER,
        Role.GUEST: _GUEST,
    }
)

OWNER_GRANTABLE: frozenset[tuple[Resource, Action]] = frozenset(
    {
        (Resource.EXPENSES, Action.DELETE),
        (Resource.EXPENSES, Action.UPDATE),
        (Resource.TASKS, Action.UPDATE),
        (Resource.TASKS, Action.DELETE),
        (Resource.TIMEENTRIES, Action.UPDATE),
        (Resource.TIMEENTRIES, Action.DELETE),
        (Resource.DOCUMENTS, Action.DELETE),
        (Resource.SETTINGS, Action.UPDATE),
    }
)


def role_default(
    role: Role,
    resource: Resource,
    action: Action,
    *,
    matrix: Mapping[Role, RoleRow] = ROLE_MATRIX,
) -> Grant:
    row = matrix.get(role)
    if row is None:
        return Grant.DENY
    actions = row.get(resource)
    if actions is None:
        return Grant.DENY
    return actions.get(action, Grant.DENY)
