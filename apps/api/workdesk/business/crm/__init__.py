from workdesk.business.crm.api import leads_router, quotes_router
from workdesk.business.crm.models import Lead, Quote
from workdesk.business.crm.schemas import (
    LeadCreate,
    LeadRead,
    LeadStageChange,
    QuoteConversionResult,
    QuoteCreate,
    QuoteRead,
    QuoteStatusChange,
)
from workdesk.business.crm.service import LeadsService, QuotesService, leads_service, quotes_service

__all__ = [
    "leads_router",
    "quotes_router",
    "Lead",
    "Quote",
    "LeadCreate",
    "LeadRead",
    "LeadStageChange",
    "QuoteConversionResult",
    "QuoteCreate",
    "QuoteRead",
    "QuoteStatusChange",
    "LeadsService",
    "QuotesService",
    "leads_service",
    "quotes_service",
]
