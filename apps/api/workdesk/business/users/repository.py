from __future__ import annotations

from workdesk.business.users.models import User
from workdesk.platform.security.repository import BaseRepository


class UserRepository(BaseRepository[User]):
    resource = "users"
    entity = "user"
    model = User
