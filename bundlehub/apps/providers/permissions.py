from __future__ import annotations

from rest_framework.permissions import BasePermission


class RequireAdminRole(BasePermission):
    """
    Allow only staff or superusers to reach fulfillment admin endpoints.
    """

    def has_permission(self, request, view):
        user = getattr(request, 'user', None)
        if not user or not getattr(user, 'is_authenticated', False):
            return False
        return bool(getattr(user, 'is_staff', False) or getattr(user, 'is_superuser', False))
