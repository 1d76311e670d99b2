"""Serializers for authentication flows (register, login, password reset)."""

from __future__ import annotations

from typing import Any

import structlog
from django.contrib.auth import get_user_model  # type: ignore
from django.contrib.auth.password_validation import validate_password  # type: ignore
from django.core.exceptions import ValidationError as DjangoValidationError  # type: ignore
from django.db import transaction  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.notifications.services import send_email_notification
from .models import PHONE_VALIDATOR, PasswordResetToken, UserManager

User = get_user_model()
logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid login or password."


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    phone = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(min_length=8, write_only=True)
    password_confirm = serializers.CharField(min_length=8, write_only=True)
    first_name = serializers.CharField(required=False, allow_blank=True)
    last_name = serializers.CharField(required=False, allow_blank=True)
    username = serializers.CharField(required=False, allow_blank=True)
    role = serializers.ChoiceField(
        choices=[User.Role.RENTER, User.Role.OWNER],
        default=User.Role.RENTER,
    )

    def validate_phone(self, value: str) -> str | None:  # type: ignore
        if not value:
            return None
        value = UserManager.normalize_phone(value)
        PHONE_VALIDATOR(value)
        return value

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:  # type: ignore
        if attrs.get("password") != attrs.get("password_confirm"):
            raise serializers.ValidationError({"password_confirm": "Passwords do not match."})
        email = attrs.get("email")
        phone = attrs.get("phone")
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError({"email": "A user with this email already exists."})
        if phone and User.objects.filter(phone=phone).exists():
            raise serializers.ValidationError({"phone": "A user with this phone already exists."})
        candidate = User(email=email, first_name=attrs.get("first_name", ""), last_name=attrs.get("last_name", ""))
        try:
            validate_password(attrs["password"], user=candidate)
        except DjangoValidationError as exc:
            raise serializers.ValidationError({"password": list(exc.messages)})
        return attrs

    @transaction.atomic
    def create(self, validated_data: dict[str, Any]):  # type: ignore
        password = validated_data.pop("password")
        validated_data.pop("password_confirm", None)
        user = User.objects.create_user(password=password, **validated_data)
        logger.info("user.registered", user=user.short_id, role=user.role)
        return user


class LoginSerializer(serializers.Serializer):
    login = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:  # type: ignore
        try:
            user = User.objects.get_by_login(attrs.get("login", ""))
        except User.DoesNotExist:
            raise serializers.ValidationError({"login": INVALID_CREDENTIALS})

        if user.is_locked:
            logger.warning("auth.login_locked", user=user.short_id)
            raise serializers.ValidationError(
                {"non_field_errors": ["Account is temporarily locked. Try again later."]}
            )

        if not user.is_active or not user.check_password(attrs.get("password", "")):
            user.register_failed_attempt()
            logger.info("auth.login_failed", user=user.short_id, attempts=user.failed_login_attempts)
            raise serializers.ValidationError({"login": INVALID_CREDENTIALS})

        user.unlock()
        attrs["user"] = user
        return attrs


class _IdentifierMixin:
    def _resolve_user(self, attrs: dict[str, Any]):
        try:
            return User.objects.get_by_login(attrs.get("identifier", ""))
        except User.DoesNotExist:
            raise serializers.ValidationError({"identifier": "User not found."})


class PasswordResetRequestSerializer(_IdentifierMixin, serializers.Serializer):
    identifier = serializers.CharField()

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:  # type: ignore
        attrs["user"] = self._resolve_user(attrs)
        return attrs

    def create(self, validated_data: dict[str, Any]):  # type: ignore
        user = validated_data["user"]
        with transaction.atomic():
            token = PasswordResetToken.issue_for(user)

        send_email_notification(
            recipient_email=user.email,
            subject="Your Dokkerr password reset code",
            context={
                "message": (
                    f"Your password reset code is {token.code}. "
                    f"It expires in {PasswordResetToken.CODE_TTL_MINUTES} minutes."
                )
            },
        )
        return token


class PasswordResetConfirmSerializer(_IdentifierMixin, serializers.Serializer):
    identifier = serializers.CharField()
    code = serializers.CharField()
    new_password = serializers.CharField(min_length=8)
    new_password_confirm = serializers.CharField(min_length=8)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:  # type: ignore
        if attrs.get("new_password") != attrs.get("new_password_confirm"):
            raise serializers.ValidationError({"new_password_confirm": "Passwords do not match."})
        attrs["user"] = self._resolve_user(attrs)
        return attrs

    def create(self, validated_data: dict[str, Any]):  # type: ignore
        user = validated_data["user"]

        # Failed attempts must persist, so each rejection commits before raising.
        token = PasswordResetToken.objects.filter(user=user, is_used=False).order_by("-created_at").first()
        if token is None:
            raise serializers.ValidationError({"code": "Code not found. Request a new one."})

        if token.is_expired:
            token.mark_used()
            raise serializers.ValidationError({"code": "The code has expired."})

        if token.attempts_left == 0:
            token.mark_used()
            raise serializers.ValidationError({"code": "Too many attempts. Request a new code."})

        if token.code != validated_data["code"]:
            token.decrement_attempt()
            raise serializers.ValidationError({"code": "Invalid code."})

        with transaction.atomic():
            user.set_password(validated_data["new_password"])
            user.failed_login_attempts = 0
            user.locked_until = None
            user.save(update_fields=["password", "failed_login_attempts", "locked_until"])
            token.mark_used()
        logger.info("auth.password_reset", user=user.short_id)
        return user
