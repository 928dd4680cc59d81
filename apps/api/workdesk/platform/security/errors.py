from __future__ import annotations

from workdesk.platform.errors import DomainError


class AuthorizationError(DomainError):
    """Raised when the permission gate denies an action. Never retried."""

    code = "NOT_AUTHORIZED"
    status_code = 403

    def __init__(self, resource: str, action: str, reason: str) -> None:
        self.resource = str(resource)
        self.action = str(action)
        self.reason = reason
        super().__init__(
            f"not authorized to {self.action} {self.resource}",
            details={"resource": self.resource, "action": self.action, "reason": reason},
        )
