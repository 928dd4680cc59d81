from workdesk.business.expenses.api import router
from workdesk.business.expenses.models import Expense
from workdesk.business.expenses.schemas import ExpenseCreate, ExpenseDecision, ExpenseRead, ExpenseUpdate
from workdesk.business.expenses.service import ExpensesService, expenses_service

__all__ = [
    "router",
    "Expense",
    "ExpenseCreate",
    "ExpenseDecision",
    "ExpenseRead",
    "ExpenseUpdate",
    "ExpensesService",
    "expenses_service",
]
