from rest_framework import permissions


class IsCellarManager(permissions.BasePermission):
    """
    Permission: User must be a cellar manager (or superuser).
    """

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_manager)


class CanWriteLedger(permissions.BasePermission):
    """
    Permission: Viewers may read; only active operators may change state.
    """

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return request.user.can_write_ledger
