"""Object permissions for listings."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore

from apps.users.permissions import IsOwnerRoleOrAdmin, is_platform_admin


class IsListingOwnerOrAdmin(IsOwnerRoleOrAdmin):
    """Owners manage their own listings; admins manage all of them."""

    message = "Only the listing owner can change this listing."

    def has_object_permission(self, request, view, obj) -> bool:  # type: ignore
        if request.method in permissions.SAFE_METHODS and view.action in {"retrieve", "list"}:
            return True
        user = request.user
        if is_platform_admin(user):
            return True
        return obj.owner_id == user.id
