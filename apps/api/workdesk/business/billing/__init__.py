from workdesk.business.billing.api import router
from workdesk.business.billing.models import Invoice, Payment
from workdesk.business.billing.schemas import (
    InvoiceCreate,
    InvoiceRead,
    InvoiceStatusChange,
    PaymentCreate,
    PaymentRead,
    PaymentResult,
    RefreshOverdueResponse,
)
from workdesk.business.billing.service import BillingService, billing_service

__all__ = [
    "router",
    "Invoice",
    "Payment",
    "InvoiceCreate",
    "InvoiceRead",
    "InvoiceStatusChange",
    "PaymentCreate",
    "PaymentRead",
    "PaymentResult",
    "RefreshOverdueResponse",
    "BillingService",
    "billing_service",
]
