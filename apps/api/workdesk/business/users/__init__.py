from workdesk.business.users.api import router
from workdesk.business.users.models import User
from workdesk.business.users.schemas import RoleChangeRequest, UserRead
from workdesk.business.users.service import UsersService, users_service

__all__ = [
    "router",
    "User",
    "RoleChangeRequest",
    "UserRead",
    "UsersService",
    "users_service",
]
