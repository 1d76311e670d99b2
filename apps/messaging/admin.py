"""Admin registration for conversations."""

from __future__ import annotations

from django.contrib import admin  # type: ignore

from .models import Conversation, Message


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ("sender", "body", "is_read", "sent_at")
    readonly_fields = ("sent_at",)
    raw_id_fields = ("sender",)


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("short_id", "user1", "user2", "listing", "last_message_at", "created_at")
    search_fields = ("short_id", "user1__email", "user2__email", "listing__title")
    raw_id_fields = ("user1", "user2", "listing", "booking")
    readonly_fields = ("short_id", "last_message_at", "last_message_preview", "created_at", "updated_at")
    inlines = [MessageInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("short_id", "conversation", "sender", "is_read", "sent_at")
    list_filter = ("is_read",)
    search_fields = ("body", "sender__email")
    raw_id_fields = ("conversation", "sender")
