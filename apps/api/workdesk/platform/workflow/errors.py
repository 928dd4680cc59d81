from __future__ import annotations

from workdesk.platform.errors import DomainError


class InvalidTransitionError(DomainError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, entity: str, current: str, requested: str) -> None:
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(
            f"cannot move {entity} from {current} to {requested}",
            details={"entity": entity, "from_status": current, "to_status": requested},
        )
