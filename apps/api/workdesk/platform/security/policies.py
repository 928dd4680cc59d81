from __future__ import annotations

from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from workdesk.authz.models import PermissionOverride
from workdesk.core.database import SessionLocal
from workdesk.metrics import observe_authz_override_cache_hit, observe_authz_override_cache_miss
from workdesk.platform.security.context import Actor


class OverrideBackend(Protocol):
    """Source of explicit per-user permission overrides."""

    def lookup(self, actor: Actor, resource: str, action: str) -> bool | None:
        """Return the override's ``granted`` flag, or None when no override exists."""
        ...


class InMemoryOverrideBackend:
    """Overrides held in process, keyed by ``(user_id, resource, action)``.

    Overrides carried on the actor itself win over the backend table.
    """

    def __init__(self, overrides: dict[tuple[str, str, str], bool] | None = None) -> None:
        self._overrides = dict(overrides or {})
        self._lock = Lock()

    def lookup(self, actor: Actor, resource: str, action: str) -> bool | None:
        key = (str(resource), str(action))
        if key in actor.overrides:
            return actor.overrides[key]
        with self._lock:
            return self._overrides.get((actor.user_id, *key))

    def set(self, user_id: str, resource: str, action: str, granted: bool) -> None:
        with self._lock:
            self._overrides[(user_id, str(resource), str(action))] = granted

    def clear(self, user_id: str, resource: str, action: str) -> None:
        with self._lock:
            self._overrides.pop((user_id, str(resource), str(action)), None)


class DbOverrideBackend:
    """Override backend reading the ``authz_permission_override`` table.

    All overrides of a user are loaded once per actor and kept in the actor's
    request-scoped cache. Reads go through the request session bound with
    ``bind_session`` when there is one, else through ``session_factory``.
    """

    CACHE_KEY = "authz.overrides"
    SESSION_KEY = "db.session"

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def lookup(self, actor: Actor, resource: str, action: str) -> bool | None:
        key = (str(resource), str(action))
        if key in actor.overrides:
            return actor.overrides[key]
        return self._load(actor).get(key)

    def _load(self, actor: Actor) -> dict[tuple[str, str], bool]:
        cached = actor._cache.get(self.CACHE_KEY)
        if isinstance(cached, dict):
            observe_authz_override_cache_hit()
            return cached

        observe_authz_override_cache_miss()
        query = select(PermissionOverride.resource, PermissionOverride.action, PermissionOverride.granted).where(
            PermissionOverride.user_id == actor.user_id
        )
        bound = actor._cache.get(self.SESSION_KEY)
        if isinstance(bound, Session):
            rows = bound.execute(query).all()
        else:
            with self._session_factory() as session:
                rows = session.execute(query).all()

        loaded = {(str(row.resource), str(row.action)): bool(row.granted) for row in rows}
        actor._cache[self.CACHE_KEY] = loaded
        return loaded


_OVERRIDE_BACKEND: OverrideBackend = InMemoryOverrideBackend()
_OVERRIDE_LOCK = Lock()


def get_override_backend() -> OverrideBackend:
    """Get the active override backend instance."""

    return _OVERRIDE_BACKEND


def set_override_backend(backend: OverrideBackend) -> None:
    """Set the active override backend instance."""

    global _OVERRIDE_BACKEND
    with _OVERRIDE_LOCK:
        _OVERRIDE_BACKEND = backend


def bind_session(actor: Actor, session: Session) -> Actor:
    """Attach the request's DB session so override lookups share its connection."""

    actor._cache[DbOverrideBackend.SESSION_KEY] = session
    return actor
