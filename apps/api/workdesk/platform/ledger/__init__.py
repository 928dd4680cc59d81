from workdesk.platform.ledger.applier import CENT, InvoiceSnapshot, LedgerState, apply_payment, to_money
from workdesk.platform.ledger.errors import InvalidAmountError, LedgerIntegrityError

__all__ = [
    "CENT",
    "InvoiceSnapshot",
    "LedgerState",
    "apply_payment",
    "to_money",
    "InvalidAmountError",
    "LedgerIntegrityError",
]
