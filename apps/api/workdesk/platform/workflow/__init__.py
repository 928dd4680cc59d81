from workdesk.platform.workflow.errors import InvalidTransitionError
from workdesk.platform.workflow.machine import (
    EXPENSE_MACHINE,
    INVOICE_MACHINE,
    LEAD_MACHINE,
    MACHINES,
    QUOTE_MACHINE,
    TASK_MACHINE,
    ExpenseStatus,
    InvoiceStatus,
    LeadStage,
    QuoteStatus,
    StatusStateMachine,
    TaskStatus,
    transition,
)

__all__ = [
    "InvalidTransitionError",
    "StatusStateMachine",
    "TaskStatus",
    "ExpenseStatus",
    "LeadStage",
    "QuoteStatus",
    "InvoiceStatus",
    "TASK_MACHINE",
    "EXPENSE_MACHINE",
    "LEAD_MACHINE",
    "QUOTE_MACHINE",
    "INVOICE_MACHINE",
    "MACHINES",
    "transition",
]
