from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from workdesk.business.expenses.models import Expense
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.repository import BaseRepository


class ExpenseRepository(BaseRepository[Expense]):
    resource = "expenses"
    entity = "expense"
    model = Expense

    def apply_visibility(self, query: Select[Any], actor: Actor) -> Select[Any]:
        if actor.at_least(Role.MANAGER):
            return query
        return query.where(Expense.user_id == actor.user_id)
