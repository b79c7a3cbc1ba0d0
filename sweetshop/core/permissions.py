from rest_framework.permissions import BasePermission

from .auth import require_role
from .models import Role


class IsAdminRole(BasePermission):
    """Allow only accounts with the ADMIN role. Pair with IsAuthenticated."""
    message = 'Admins only'

    def has_permission(self, request, view):
        require_role(request.user, Role.ADMIN)
        return True
