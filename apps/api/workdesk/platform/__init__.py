from workdesk.platform.concurrency import guarded_update, run_with_retry
from workdesk.platform.errors import BusinessRuleError, ConflictError, DomainError, NotFoundError

__all__ = [
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "BusinessRuleError",
    "guarded_update",
    "run_with_retry",
]
