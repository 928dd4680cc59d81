from workdesk.authz.models import PermissionOverride

__all__ = ["PermissionOverride"]
