"""Permission classes shared by Dokkerr apps."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore


def is_platform_admin(user) -> bool:
    if not user or not user.is_authenticated:
        return False
    if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
        return True
    return hasattr(user, "is_platform_admin") and user.is_platform_admin()


class IsPlatformAdmin(permissions.BasePermission):
    """Only platform admins (role=admin, staff or superuser)."""

    def has_permission(self, request, view) -> bool:  # type: ignore
        return is_platform_admin(request.user)


class IsOwnerRoleOrAdmin(permissions.BasePermission):
    """Write access for slip owners and admins; reads for everyone."""

    message = "Only slip owners can manage listings."

    def has_permission(self, request, view) -> bool:  # type: ignore
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        if not user.is_authenticated:
            return False
        if is_platform_admin(user):
            return True
        return hasattr(user, "is_owner") and user.is_owner()
