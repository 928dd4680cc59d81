from __future__ import annotations

import logging
from collections.abc import Generator
from types import MappingProxyType

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workdesk.authz.models import PermissionOverride
from workdesk.core.database import Base
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.errors import AuthorizationError
from workdesk.platform.security.gate import PermissionGate, permission_gate
from workdesk.platform.security.matrix import OWNER_GRANTABLE, ROLE_MATRIX, Action, Grant, Resource, role_default
from workdesk.platform.security.policies import DbOverrideBackend, InMemoryOverrideBackend, set_override_backend


# Columns: create, read, update, delete, approve. A = allow, D = deny, O = own.
EXPECTED_MATRIX: dict[Role, dict[Resource, str]] = {
    Role.MANAGER: {
        Resource.USERS: "DADDD",
        Resource.PROJECTS: "AAADA",
        Resource.CLIENTS: "AAADA",
        Resource.LEADS: "AAAAA",
        Resource.TASKS: "AAAAA",
        Resource.TIMEENTRIES: "AAAOA",
        Resource.DOCUMENTS: "AAAOA",
        Resource.EXPENSES: "AAOOA",
        Resource.INVOICES: "AAADA",
        Resource.SETTINGS: "DAODD",
        Resource.ANALYTICS: "DADDD",
        Resource.PERMISSIONS: "DADDD",
    },
    Role.WORKER: {
        Resource.USERS: "DDDDD",
        Resource.PROJECTS: "DADDD",
        Resource.CLIENTS: "DADDD",
        Resource.LEADS: "AAODD",
        Resource.TASKS: "AAODD",
        Resource.TIMEENTRIES: "AOOOD",
        Resource.DOCUMENTS: "AAOOD",
        Resource.EXPENSES: "AOOOD",
        Resource.INVOICES: "DDDDD",
        Resource.SETTINGS: "DOODD",
        Resource.ANALYTICS: "DDDDD",
        Resource.PERMISSIONS: "DDDDD",
    },
    Role.GUEST: {
        Resource.USERS: "DDDDD",
        Resource.PROJECTS: "DODDD",
        Resource.CLIENTS: "DODDD",
        Resource.LEADS: "DDDDD",
        Resource.TASKS: "DODDD",
        Resource.TIMEENTRIES: "DDDDD",
        Resource.DOCUMENTS: "DODDD",
        Resource.EXPENSES: "DDDDD",
        Resource.INVOICES: "DODDD",
        Resource.SETTINGS: "DOODD",
        Resource.ANALYTICS: "DDDDD",
        Resource.PERMISSIONS: "DDDDD",
    },
}
EXPECTED_MATRIX[Role.ADMIN] = {resource: "AAAAA" for resource in Resource}
EXPECTED_MATRIX[Role.SUPERADMIN] = {resource: "AAAAA" for resource in Resource}

_ACTION_ORDER = [Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.APPROVE]
_GRANT_CODES = {"A": Grant.ALLOW, "D": Grant.DENY, "O": Grant.OWN}

GOLDEN_CASES = [
    (role, resource, action, _GRANT_CODES[codes[index]])
    for role, rows in EXPECTED_MATRIX.items()
    for resource, codes in rows.items()
    for index, action in enumerate(_ACTION_ORDER)
]


@pytest.fixture(autouse=True)
def reset_override_backend() -> Generator[None, None, None]:
    set_override_backend(InMemoryOverrideBackend())
    yield
    set_override_backend(InMemoryOverrideBackend())


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _actor(role: Role, user_id: str = "u-1", **kwargs) -> Actor:
    return Actor(user_id=user_id, role=role, company_id="co-1", **kwargs)


def _denials(resource: str, action: str, reason: str) -> float:
    value = REGISTRY.get_sample_value(
        "authz_denied_total",
        {"resource": resource, "action": action, "reason": reason},
    )
    return value or 0.0


def test_golden_table_covers_every_role_resource_action() -> None:
    assert len(GOLDEN_CASES) == len(Role) * len(Resource) * len(Action)


@pytest.mark.parametrize(("role", "resource", "action", "expected"), GOLDEN_CASES)
def test_role_default_matches_golden_table(role: Role, resource: Resource, action: Action, expected: Grant) -> None:
    assert role_default(role, resource, action) == expected


@pytest.mark.parametrize(("role", "resource", "action", "expected"), GOLDEN_CASES)
def test_authorize_without_owner_follows_golden_table(
    role: Role,
    resource: Resource,
    action: Action,
    expected: Grant,
) -> None:
    actor = _actor(role)
    if expected == Grant.DENY:
        with pytest.raises(AuthorizationError):
            permission_gate.authorize(actor, resource, action)
    else:
        permission_gate.authorize(actor, resource, action)


def test_own_grant_allows_owner_and_denies_others() -> None:
    worker = _actor(Role.WORKER)

    assert permission_gate.decide(worker, Resource.EXPENSES, Action.UPDATE, resource_owner_id="u-1").reason == "own_resource"
    decision = permission_gate.decide(worker, Resource.EXPENSES, Action.UPDATE, resource_owner_id="u-2")
    assert decision.allowed is False
    assert decision.reason == "not_owner"


def test_role_matrix_is_read_only() -> None:
    with pytest.raises(TypeError):
        ROLE_MATRIX[Role.WORKER] = ROLE_MATRIX[Role.ADMIN]  # type: ignore[index]
    with pytest.raises(TypeError):
        ROLE_MATRIX[Role.WORKER][Resource.INVOICES][Action.READ] = Grant.ALLOW  # type: ignore[index]


def test_unknown_resource_or_action_is_denied() -> None:
    admin = _actor(Role.ADMIN)

    assert permission_gate.decide(admin, "payroll", "read").reason == "unknown_permission"
    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.authorize(admin, "invoices", "archive")
    assert exc_info.value.reason == "unknown_permission"


def test_granted_override_beats_role_deny() -> None:
    worker = _actor(Role.WORKER, overrides={("invoices", "read"): True})

    permission_gate.authorize(worker, Resource.INVOICES, Action.READ)
    assert permission_gate.decide(worker, Resource.INVOICES, Action.READ).reason == "override_granted"


def test_revoked_override_beats_role_allow() -> None:
    manager = _actor(Role.MANAGER, overrides={("invoices", "create"): False})

    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.authorize(manager, Resource.INVOICES, Action.CREATE)
    assert exc_info.value.reason == "override_denied"
    assert exc_info.value.code == "NOT_AUTHORIZED"
    assert exc_info.value.status_code == 403


def test_backend_override_applies_per_user() -> None:
    backend = InMemoryOverrideBackend()
    backend.set("u-1", "analytics", "read", True)
    gate = PermissionGate(backend=backend)

    assert gate.can(_actor(Role.WORKER, "u-1"), Resource.ANALYTICS, Action.READ) is True
    assert gate.can(_actor(Role.WORKER, "u-2"), Resource.ANALYTICS, Action.READ) is False

    backend.clear("u-1", "analytics", "read")
    assert gate.can(_actor(Role.WORKER, "u-1"), Resource.ANALYTICS, Action.READ) is False


def test_override_on_the_actor_wins_over_backend_table() -> None:
    backend = InMemoryOverrideBackend({("u-1", "analytics", "read"): True})
    gate = PermissionGate(backend=backend)
    actor = _actor(Role.WORKER, overrides={("analytics", "read"): False})

    assert gate.decide(actor, Resource.ANALYTICS, Action.READ).reason == "override_denied"


def test_owner_grant_applies_only_to_grantable_pairs() -> None:
    strict = {role: dict(row) for role, row in ROLE_MATRIX.items()}
    worker_row = {resource: dict(actions) for resource, actions in strict[Role.WORKER].items()}
    worker_row[Resource.EXPENSES][Action.DELETE] = Grant.DENY
    worker_row[Resource.EXPENSES][Action.APPROVE] = Grant.DENY
    strict[Role.WORKER] = MappingProxyType({resource: MappingProxyType(actions) for resource, actions in worker_row.items()})
    gate = PermissionGate(matrix=MappingProxyType(strict))
    worker = _actor(Role.WORKER)

    assert (Resource.EXPENSES, Action.DELETE) in OWNER_GRANTABLE
    decision = gate.decide(worker, Resource.EXPENSES, Action.DELETE, resource_owner_id="u-1")
    assert decision.allowed is True
    assert decision.reason == "owner_grant"

    assert gate.decide(worker, Resource.EXPENSES, Action.DELETE, resource_owner_id="u-2").reason == "role_denied"
    assert gate.decide(worker, Resource.EXPENSES, Action.DELETE).reason == "role_denied"
    # approve is not owner-grantable
    assert gate.decide(worker, Resource.EXPENSES, Action.APPROVE, resource_owner_id="u-1").allowed is False


def test_owner_grant_never_applies_to_guests() -> None:
    guest = _actor(Role.GUEST)

    decision = permission_gate.decide(guest, Resource.TASKS, Action.UPDATE, resource_owner_id="u-1")
    assert decision.allowed is False
    assert decision.reason == "role_denied"


@pytest.mark.parametrize("new_role", [Role.ADMIN, Role.MANAGER])
def test_manager_cannot_grant_privileged_roles_even_with_override(new_role: Role) -> None:
    manager = _actor(Role.MANAGER, overrides={("users", "update"): True})

    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.guard_role_assignment(manager, Role.WORKER, new_role)
    assert exc_info.value.reason == "manager_cannot_grant_privileged"


def test_manager_cannot_edit_privileged_user() -> None:
    manager = _actor(Role.MANAGER)

    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.guard_role_assignment(manager, Role.ADMIN, Role.WORKER)
    assert exc_info.value.reason == "manager_cannot_edit_privileged"


def test_manager_may_demote_worker_to_guest() -> None:
    permission_gate.guard_role_assignment(_actor(Role.MANAGER), Role.WORKER, Role.GUEST)


def test_no_actor_assigns_role_above_own() -> None:
    admin = _actor(Role.ADMIN)

    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.guard_role_assignment(admin, Role.WORKER, Role.SUPERADMIN)
    assert exc_info.value.reason == "role_above_actor"

    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.guard_role_assignment(admin, Role.SUPERADMIN, Role.WORKER)
    assert exc_info.value.reason == "target_above_actor"

    permission_gate.guard_role_assignment(_actor(Role.SUPERADMIN), Role.WORKER, Role.SUPERADMIN)


def test_guest_cannot_assign_roles() -> None:
    with pytest.raises(AuthorizationError) as exc_info:
        permission_gate.guard_role_assignment(_actor(Role.GUEST), Role.GUEST, Role.GUEST)
    assert exc_info.value.reason == "guest_cannot_assign_roles"


def test_self_deletion_is_denied_for_every_role() -> None:
    for role in Role:
        actor = _actor(role, overrides={("users", "delete"): True})
        with pytest.raises(AuthorizationError) as exc_info:
            permission_gate.guard_user_deletion(actor, actor.user_id)
        assert exc_info.value.reason == "self_deletion"

    permission_gate.guard_user_deletion(_actor(Role.ADMIN), "someone-else", Role.WORKER)


def test_denial_logs_and_counts(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="workdesk.authz")
    before = _denials("invoices", "delete", "role_denied")

    with pytest.raises(AuthorizationError):
        permission_gate.authorize(_actor(Role.WORKER), Resource.INVOICES, Action.DELETE)

    assert _denials("invoices", "delete", "role_denied") == before + 1
    records = [record for record in caplog.records if record.getMessage() == "authz.denied"]
    assert records
    assert getattr(records[-1], "reason", None) == "role_denied"
    assert getattr(records[-1], "user_id", None) == "u-1"


def test_db_backend_loads_overrides_once_per_actor(db_session: Session) -> None:
    db_session.add_all(
        [
            PermissionOverride(
                company_id="co-1",
                user_id="u-1",
                resource="invoices",
                action="read",
                granted=True,
                created_by_id="admin-1",
            ),
            PermissionOverride(
                company_id="co-1",
                user_id="u-1",
                resource="tasks",
                action="create",
                granted=False,
                created_by_id="admin-1",
            ),
        ]
    )
    db_session.commit()
    gate = PermissionGate(backend=DbOverrideBackend(session_factory=sessionmaker(bind=db_session.bind)))
    actor = _actor(Role.WORKER)
    misses_before = REGISTRY.get_sample_value("authz_override_cache_miss_total") or 0.0
    hits_before = REGISTRY.get_sample_value("authz_override_cache_hit_total") or 0.0

    assert gate.can(actor, Resource.INVOICES, Action.READ) is True
    assert gate.can(actor, Resource.TASKS, Action.CREATE) is False
    assert gate.can(actor, Resource.TASKS, Action.READ) is True

    assert REGISTRY.get_sample_value("authz_override_cache_miss_total") == misses_before + 1
    assert REGISTRY.get_sample_value("authz_override_cache_hit_total") == hits_before + 2
    assert actor._cache[DbOverrideBackend.CACHE_KEY] == {("invoices", "read"): True, ("tasks", "create"): False}


def test_role_parse_falls_back_to_guest() -> None:
    assert Role.parse("manager") is Role.MANAGER
    assert Role.parse("CLIENT") is Role.GUEST
    assert Role.parse(None) is Role.GUEST
    assert Role.GUEST.rank is None
    assert Role.SUPERADMIN.at_least(Role.ADMIN)
    assert not Role.GUEST.at_least(Role.WORKER)
    assert not Role.WORKER.at_least(Role.GUEST)
