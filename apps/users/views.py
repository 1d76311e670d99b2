"""User API views."""

from __future__ import annotations

from django.contrib.auth import get_user_model  # type: ignore
from rest_framework import mixins, permissions, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.infrastructure.lookups import ShortIdLookupMixin
from .permissions import IsPlatformAdmin
from .serializers import PublicUserSerializer, UserSerializer

User = get_user_model()


class UserViewSet(ShortIdLookupMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """User profiles.

    - `me` returns and updates the caller's own profile
    - `retrieve` returns the public profile of any user
    - `list` is limited to platform admins
    """

    queryset = User.objects.filter(is_active=True)
    filterset_fields = ["role"]

    def get_permissions(self):  # type: ignore
        if self.action == "list":
            return [IsPlatformAdmin()]
        return [permissions.IsAuthenticated()]

    def get_serializer_class(self):  # type: ignore
        if self.action in {"list", "me"}:
            return UserSerializer
        return PublicUserSerializer

    @action(detail=False, methods=["get", "patch"])
    def me(self, request):
        """Current user's profile; PATCH updates editable fields."""
        if request.method == "GET":
            return Response(UserSerializer(request.user).data)
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
