"""Every mapped table, for metadata consumers (Alembic, schema bootstrap).

Kept out of ``workdesk.models`` so that importing the audit or notification
tables never pulls in the business packages and their services.
"""

from workdesk.authz.models import PermissionOverride
from workdesk.business.billing.models import Invoice, Payment
from workdesk.business.crm.models import Lead, Quote
from workdesk.business.expenses.models import Expense
from workdesk.business.tasks.models import Task
from workdesk.business.users.models import User
from workdesk.models.audit import AuditLog
from workdesk.models.notification import Notification

__all__ = [
    "AuditLog",
    "Notification",
    "PermissionOverride",
    "User",
    "Task",
    "Expense",
    "Lead",
    "Quote",
    "Invoice",
    "Payment",
]
