from __future__ import annotations

from workdesk.business.billing.models import Invoice, Payment
from workdesk.platform.security.repository import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    resource = "invoices"
    entity = "invoice"
    model = Invoice


class PaymentRepository(BaseRepository[Payment]):
    resource = "invoices"
    entity = "payment"
    model = Payment
