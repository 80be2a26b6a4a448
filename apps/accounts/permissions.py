from rest_framework.permissions import BasePermission, SAFE_METHODS

from .policies import require_auth, require_admin, require_owner_or_admin


class IsAuthenticatedUser(BasePermission):
    """
    Active, authenticated caller. Denials raise so the envelope carries
    the policy's reason and status (401 vs 403).
    """

    def has_permission(self, request, view):
        require_auth(request.user).enforce()
        return True


class IsAdmin(BasePermission):
    def has_permission(self, request, view):
        require_admin(request.user).enforce()
        return True


class IsOwnerOrAdmin(BasePermission):
    """
    Object-level gate. The owner is read from `owner_field` on the view
    (default "user_id").
    """

    def has_permission(self, request, view):
        require_auth(request.user).enforce()
        return True

    def has_object_permission(self, request, view, obj):
        owner_field = getattr(view, "owner_field", "user_id")
        require_owner_or_admin(request.user, getattr(obj, owner_field, None)).enforce()
        return True


class IsAdminOrReadOnly(BasePermission):
    """Public reads, admin-only writes (catalog)."""

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        require_admin(request.user).enforce()
        return True
