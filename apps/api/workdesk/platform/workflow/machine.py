from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Generic, TypeVar

from workdesk.metrics import observe_status_transition
from workdesk.platform.workflow.errors import InvalidTransitionError


logger = logging.getLogger("workdesk.workflow")

StateT = TypeVar("StateT", bound=StrEnum)


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class ExpenseStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LeadStage(StrEnum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    PROPOSAL = "PROPOSAL"
    NEGOTIATION = "NEGOTIATION"
    WON = "WON"
    LOST = "LOST"


class QuoteStatus(StrEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED = "CONVERTED"


class InvoiceStatus(StrEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class StatusStateMachine(Generic[StateT]):
    """Table-driven transition validator for one entity type.

    The machine only answers whether a move is legal; it never touches the
    entity. Self-transitions and unknown states are rejected.
    """

    def __init__(self, entity: str, state_type: type[StateT], edges: Mapping[StateT, Iterable[StateT]]) -> None:
        missing = set(state_type) - set(edges)
        if missing:
            raise ValueError(f"{entity} graph has no entry for {sorted(missing)}")
        self.entity = entity
        self.state_type = state_type
        self._edges: Mapping[StateT, frozenset[StateT]] = MappingProxyType(
            {state: frozenset(targets) for state, targets in edges.items()}
        )

    def _coerce(self, value: object) -> StateT | None:
        try:
            return self.state_type(str(value))
        except ValueError:
            return None

    def can_transition(self, current: object, requested: object) -> bool:
        source = self._coerce(current)
        target = self._coerce(requested)
        if source is None or target is None:
            return False
        return target in self._edges[source]

    def transition(self, current: object, requested: object) -> StateT:
        """Validate ``current -> requested`` and return the requested state."""

        if not self.can_transition(current, requested):
            observe_status_transition(self.entity, "rejected")
            logger.info(
                "transition.rejected",
                extra={"entity_type": self.entity, "from_status": str(current), "to_status": str(requested)},
            )
            raise InvalidTransitionError(self.entity, str(current), str(requested))
        observe_status_transition(self.entity, "accepted")
        return self.state_type(str(requested))

    def allowed(self, current: object) -> frozenset[StateT]:
        source = self._coerce(current)
        if source is None:
            return frozenset()
        return self._edges[source]

    def is_terminal(self, state: object) -> bool:
        source = self._coerce(state)
        return source is not None and not self._edges[source]


def _ordered_pipeline(
    order: list[LeadStage], closing: tuple[LeadStage, ...]
) -> dict[LeadStage, set[LeadStage]]:
    edges: dict[LeadStage, set[LeadStage]] = {}
    for index, stage in enumerate(order):
        edges[stage] = set(order[index + 1 :]) | set(closing)
    for stage in closing:
        edges[stage] = set()
    return edges


TASK_MACHINE = StatusStateMachine(
    "task",
    TaskStatus,
    {
        TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
        TaskStatus.IN_PROGRESS: {TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.CANCELLED},
        TaskStatus.COMPLETED: set(),
        TaskStatus.CANCELLED: set(),
    },
)

EXPENSE_MACHINE = StatusStateMachine(
    "expense",
    ExpenseStatus,
    {
        ExpenseStatus.PENDING: {ExpenseStatus.APPROVED, ExpenseStatus.REJECTED},
        ExpenseStatus.APPROVED: set(),
        ExpenseStatus.REJECTED: set(),
    },
)

LEAD_MACHINE = StatusStateMachine(
    "lead",
    LeadStage,
    _ordered_pipeline(
        [LeadStage.NEW, LeadStage.CONTACTED, LeadStage.QUALIFIED, LeadStage.PROPOSAL, LeadStage.NEGOTIATION],
        (LeadStage.WON, LeadStage.LOST),
    ),
)

QUOTE_MACHINE = StatusStateMachine(
    "quote",
    QuoteStatus,
    {
        QuoteStatus.DRAFT: {QuoteStatus.SENT},
        QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
        QuoteStatus.ACCEPTED: {QuoteStatus.CONVERTED},
        QuoteStatus.REJECTED: set(),
        QuoteStatus.EXPIRED: set(),
        QuoteStatus.CONVERTED: set(),
    },
)

INVOICE_MACHINE = StatusStateMachine(
    "invoice",
    InvoiceStatus,
    {
        InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
        InvoiceStatus.SENT: {
            InvoiceStatus.PARTIAL,
            InvoiceStatus.PAID,
            InvoiceStatus.OVERDUE,
            InvoiceStatus.CANCELLED,
        },
        InvoiceStatus.PARTIAL: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
        InvoiceStatus.OVERDUE: {InvoiceStatus.PARTIAL, InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
        InvoiceStatus.PAID: set(),
        InvoiceStatus.CANCELLED: set(),
    },
)

MACHINES: Mapping[str, StatusStateMachine] = MappingProxyType(
    {
        machine.entity: machine
        for machine in (TASK_MACHINE, EXPENSE_MACHINE, LEAD_MACHINE, QUOTE_MACHINE, INVOICE_MACHINE)
    }
)


def transition(entity: str, current: object, requested: object) -> StrEnum:
    machine = MACHINES.get(entity)
    if machine is None:
        raise KeyError(f"no state machine registered for '{entity}'")
    return machine.transition(current, requested)
