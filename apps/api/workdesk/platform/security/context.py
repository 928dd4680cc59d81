from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    GUEST = "GUEST"
    WORKER = "WORKER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"

    @property
    def rank(self) -> int | None:
        """Position in the hierarchy; GUEST sits outside it."""

        return _ROLE_RANKS.get(self)

    def at_least(self, other: Role) -> bool:
        mine, theirs = self.rank, other.rank
        if mine is None or theirs is None:
            return False
        return mine >= theirs

    @classmethod
    def parse(cls, value: object) -> Role:
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.GUEST


_ROLE_RANKS: dict[Role, int] = {
    Role.WORKER: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
    Role.SUPERADMIN: 4,
}


@dataclass(slots=True)
class Actor:
    """Authenticated caller used by the permission gate and tenant scoping."""

    user_id: str
    role: Role = Role.GUEST
    company_id: str | None = None
    correlation_id: str | None = None
    name: str | None = None
    overrides: dict[tuple[str, str], bool] = field(default_factory=dict)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_guest(self) -> bool:
        return self.role == Role.GUEST

    def at_least(self, role: Role) -> bool:
        return self.role.at_least(role)
