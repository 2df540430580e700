from rest_framework import permissions


class IsStoreStaff(permissions.BasePermission):
    """Admins and cashiers run stock-mutating operations."""

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_store_staff)


class IsStoreAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.role == "ADMIN")


class IsStoreStaffOrReadOnly(permissions.BasePermission):
    """Any signed-in user may read; writes need an admin or cashier."""

    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return request.user.is_store_staff
