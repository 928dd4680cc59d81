from __future__ import annotations

from workdesk.business.crm.models import Lead, Quote
from workdesk.platform.security.repository import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    resource = "leads"
    entity = "lead"
    model = Lead


class QuoteRepository(BaseRepository[Quote]):
    resource = "leads"
    entity = "quote"
    model = Quote
