from __future__ import annotations

from decimal import Decimal

from workdesk.platform.errors import DomainError


class InvalidAmountError(DomainError):
    """Raised when a payment amount is not within ``(0, balance]``.

    ``bound`` is the limit that was crossed: zero for non-positive amounts,
    the outstanding balance for over-payments.
    """

    code = "INVALID_AMOUNT"
    status_code = 422

    def __init__(self, amount: Decimal, bound: Decimal) -> None:
        self.amount = amount
        self.bound = bound
        if bound == 0:
            message = f"payment amount {amount} must be greater than 0"
        else:
            message = f"payment amount {amount} exceeds outstanding balance {bound}"
        super().__init__(message, details={"amount": str(amount), "bound": str(bound)})


class LedgerIntegrityError(DomainError):
    """Raised when a stored invoice violates ``balance == total - paid_amount``."""

    code = "LEDGER_INTEGRITY"
    status_code = 500

    def __init__(self, invoice_id: str, detail: str) -> None:
        self.invoice_id = invoice_id
        super().__init__(f"invoice {invoice_id} is inconsistent: {detail}", details={"invoice_id": invoice_id})
