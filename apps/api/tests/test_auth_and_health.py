from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workdesk.authz.models import PermissionOverride
from workdesk.core.config import get_settings
from workdesk.core.database import Base, get_db
from workdesk.main import app
from workdesk.platform.security.policies import DbOverrideBackend, InMemoryOverrideBackend, set_override_backend


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    set_override_backend(InMemoryOverrideBackend())
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    app.dependency_overrides.clear()
    with TestClient(app) as test_client:
        yield test_client


def _token(**claims: object) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def test_health_reports_service(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "Workdesk API"
    assert response.headers["x-correlation-id"]


def test_request_without_token_is_anonymous_guest(client: TestClient) -> None:
    response = client.get("/me")

    assert response.status_code == 200
    assert response.json() == {"user_id": "anonymous", "role": "GUEST", "company_id": None, "name": None}


def test_valid_token_builds_actor(client: TestClient) -> None:
    token = _token(sub="mgr-7", role="manager", company_id="co-9", name="Mina")

    response = client.get("/me", headers={"Authorization": f"Bearer {token}"})

    assert response.json() == {"user_id": "mgr-7", "role": "MANAGER", "company_id": "co-9", "name": "Mina"}


def test_unknown_role_claim_falls_back_to_guest(client: TestClient) -> None:
    token = _token(sub="ext-1", role="contractor", company_id="co-9")

    assert client.get("/me", headers={"Authorization": f"Bearer {token}"}).json()["role"] == "GUEST"


@pytest.mark.parametrize(
    "header",
    [
        "Bearer not-a-jwt",
        f"Bearer {jwt.encode({'sub': 'mgr-7', 'role': 'ADMIN'}, 'other-secret', algorithm='HS256')}",
    ],
    ids=["garbage", "wrong-secret"],
)
def test_bad_token_is_rejected(client: TestClient, header: str) -> None:
    response = client.get("/me", headers={"Authorization": header})

    assert response.status_code == 401


def test_token_without_subject_is_rejected(client: TestClient) -> None:
    token = _token(role="ADMIN", company_id="co-9")

    assert client.get("/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_anonymous_guest_cannot_reach_tenant_data(client: TestClient) -> None:
    response = client.get("/users")

    assert response.status_code == 403
    assert response.json()["code"] == "NOT_AUTHORIZED"


def test_overrides_are_read_through_request_session(client: TestClient) -> None:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    session.add(
        PermissionOverride(
            company_id="co-9",
            user_id="wrk-7",
            resource="users",
            action="read",
            granted=True,
            created_by_id="adm-9",
        )
    )
    session.commit()

    def override_get_db() -> Generator[Session, None, None]:
        yield session

    def no_own_sessions() -> Session:
        raise AssertionError("override lookup opened its own session")

    app.dependency_overrides[get_db] = override_get_db
    set_override_backend(DbOverrideBackend(session_factory=no_own_sessions))  # type: ignore[arg-type]
    try:
        token = _token(sub="wrk-7", role="WORKER", company_id="co-9")
        response = client.get("/users", headers={"Authorization": f"Bearer {token}"})
    finally:
        app.dependency_overrides.clear()
        set_override_backend(InMemoryOverrideBackend())
        session.close()
        Base.metadata.drop_all(bind=engine)

    assert response.status_code == 200
    assert response.json() == []
