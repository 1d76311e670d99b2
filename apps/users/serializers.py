"""Serializers for user-related API endpoints."""

from __future__ import annotations

from django.contrib.auth import get_user_model  # type: ignore
from rest_framework import serializers  # type: ignore

from .models import PHONE_VALIDATOR, UserManager

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Full profile, returned to the account holder."""

    display_name = serializers.ReadOnlyField()

    class Meta:
        model = User
        fields = [
            "id",
            "short_id",
            "email",
            "username",
            "display_name",
            "first_name",
            "last_name",
            "phone",
            "role",
            "avatar",
            "bio",
            "is_email_verified",
            "is_phone_verified",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "short_id",
            "email",
            "role",
            "is_email_verified",
            "is_phone_verified",
            "created_at",
            "updated_at",
        ]

    def validate_phone(self, value: str | None) -> str | None:  # type: ignore
        if not value:
            return None
        PHONE_VALIDATOR(UserManager.normalize_phone(value))
        value = UserManager.normalize_phone(value)
        qs = User.objects.filter(phone=value)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError("A user with this phone already exists.")
        return value


class PublicUserSerializer(serializers.ModelSerializer):
    """What other marketplace users may see about someone."""

    display_name = serializers.ReadOnlyField()
    member_since = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = User
        fields = ["id", "short_id", "display_name", "role", "avatar", "bio", "member_since"]
        read_only_fields = fields
