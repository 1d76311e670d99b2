"""Admin registrations for the users domain."""

from __future__ import annotations

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import PasswordResetToken, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (
            _("Personal info"),
            {"fields": ("username", "first_name", "last_name", "phone", "avatar", "bio")},
        ),
        (_("Verification"), {"fields": ("is_email_verified", "is_phone_verified")}),
        (_("Marketplace"), {"fields": ("role", "stripe_customer_id")}),
        (_("Security"), {"fields": ("failed_login_attempts", "locked_until")}),
        (
            _("Permissions"),
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        (_("Important dates"), {"fields": ("last_login", "date_joined", "created_at", "updated_at")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2", "first_name", "last_name", "phone", "role"),
            },
        ),
    )
    list_display = ("email", "short_id", "role", "phone", "is_active", "is_email_verified", "is_locked")
    list_filter = ("role", "is_active", "is_staff", "is_email_verified")
    search_fields = ("email", "phone", "short_id", "first_name", "last_name")
    ordering = ("-created_at",)
    readonly_fields = ("short_id", "created_at", "updated_at", "last_login", "date_joined")

    @admin.display(boolean=True, description=_("Locked"))
    def is_locked(self, obj: User) -> bool:
        return obj.is_locked


@admin.register(PasswordResetToken)
class PasswordResetTokenAdmin(admin.ModelAdmin):
    list_display = ("user", "expires_at", "attempts_left", "is_used", "created_at")
    list_filter = ("is_used",)
    search_fields = ("user__email",)
    readonly_fields = ("code", "created_at")
