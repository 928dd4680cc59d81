from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from workdesk.metrics import observe_payment_rejected
from workdesk.otel import get_tracer
from workdesk.platform.ledger.errors import InvalidAmountError, LedgerIntegrityError
from workdesk.platform.workflow.machine import InvoiceStatus


tracer = get_tracer("workdesk.platform.ledger")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Quantize ``value`` to cents. Floats go through ``str`` to avoid binary noise."""

    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"not a monetary amount: {value!r}") from exc


def _unrepresentable_bound(amount: Any, balance: Decimal) -> Decimal:
    try:
        negative = Decimal(str(amount)) <= ZERO
    except (InvalidOperation, ValueError):
        negative = False
    return ZERO if negative else balance


@dataclass(frozen=True, slots=True)
class InvoiceSnapshot:
    """The ledger-relevant part of an invoice as read at one row version."""

    invoice_id: str
    total: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    row_version: int = 1

    @classmethod
    def from_invoice(cls, invoice: Any) -> InvoiceSnapshot:
        snapshot = cls(
            invoice_id=str(invoice.id),
            total=to_money(invoice.total),
            paid_amount=to_money(invoice.paid_amount),
            balance=to_money(invoice.balance),
            status=InvoiceStatus(invoice.status),
            row_version=int(invoice.row_version),
        )
        snapshot.check_integrity()
        return snapshot

    def check_integrity(self) -> None:
        if self.paid_amount < 0:
            raise LedgerIntegrityError(self.invoice_id, "paid amount is negative")
        if self.balance < 0:
            raise LedgerIntegrityError(self.invoice_id, "balance is negative")
        if self.balance != self.total - self.paid_amount:
            raise LedgerIntegrityError(self.invoice_id, "balance does not equal total minus paid amount")


@dataclass(frozen=True, slots=True)
class LedgerState:
    paid_amount: Decimal
    balance: Decimal
    status: InvoiceStatus


def apply_payment(snapshot: InvoiceSnapshot, amount: Any) -> LedgerState:
    """Compute the invoice state after paying ``amount`` against ``snapshot``.

    Pure: nothing is persisted. ``amount`` is quantized to cents first, so a
    sub-cent amount that rounds to zero is rejected like zero.
    """

    with tracer.start_as_current_span("ledger.apply_payment") as span:
        span.set_attribute("invoice_id", snapshot.invoice_id)
        span.set_attribute("row_version", snapshot.row_version)

        try:
            money = to_money(amount)
        except ValueError as exc:
            # Too many digits to hold in cents, or not a number at all.
            observe_payment_rejected("unrepresentable")
            raise InvalidAmountError(amount, _unrepresentable_bound(amount, snapshot.balance)) from exc
        span.set_attribute("amount", str(money))
        if money <= ZERO:
            observe_payment_rejected("non_positive")
            raise InvalidAmountError(money, ZERO)
        if money > snapshot.balance:
            observe_payment_rejected("exceeds_balance")
            raise InvalidAmountError(money, snapshot.balance)

        paid = snapshot.paid_amount + money
        balance = snapshot.total - paid
        if balance == ZERO:
            status = InvoiceStatus.PAID
        elif paid > ZERO:
            status = InvoiceStatus.PARTIAL
        else:
            status = snapshot.status

        span.set_attribute("status", status.value)
        return LedgerState(paid_amount=paid, balance=balance, status=status)
