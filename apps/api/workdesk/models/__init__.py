from workdesk.models.audit import AuditLog
from workdesk.models.notification import Notification

__all__ = [
	"AuditLog",
	"Notification",
]
