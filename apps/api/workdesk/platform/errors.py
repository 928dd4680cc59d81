from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class for rejections the HTTP layer maps to an error envelope."""

    code = "DOMAIN_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_payload(self, correlation_id: str | None = None) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "correlation_id": correlation_id,
        }


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(f"{entity} not found", details={"entity": entity, "entity_id": self.entity_id})


class ConflictError(DomainError):
    """Raised when a conditional update loses against a concurrent writer."""

    code = "CONFLICT"
    status_code = 409
    retryable = True

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = str(entity_id)
        super().__init__(
            f"{entity} was modified concurrently",
            details={"entity": entity, "entity_id": self.entity_id},
        )


class BusinessRuleError(DomainError):
    code = "BUSINESS_RULE"
    status_code = 422

    def __init__(self, message: str, *, rule: str, details: dict[str, Any] | None = None) -> None:
        self.rule = rule
        merged = {"rule": rule}
        merged.update(details or {})
        super().__init__(message, details=merged)
