"""
Role checks shared by the services and views.

The views use these to refuse early; the services repeat the checks because
they are the authorization boundary.
"""

from rest_framework.permissions import BasePermission

ROLE_USER = 'user'
ROLE_DONOR = 'donor'
ROLE_ADMIN = 'admin'


def has_role(user, *roles) -> bool:
    return bool(user and user.is_authenticated and getattr(user, 'role', None) in roles)


def is_admin(user) -> bool:
    return has_role(user, ROLE_ADMIN)


class IsPlatformAdmin(BasePermission):
    """Allows access only to users holding the ``admin`` role."""
    message = "Only admins can perform this operation"

    def has_permission(self, request, view):
        return is_admin(request.user)
