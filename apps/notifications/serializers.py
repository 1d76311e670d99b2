"""Serializers for notifications."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    """In-app notification; ``payload`` carries ids of the related booking or conversation."""

    event_label = serializers.CharField(source="get_event_display", read_only=True)

    class Meta:
        model = Notification
        fields = ['id', 'event', 'event_label', 'title', 'body', 'payload', 'is_read', 'read_at', 'created_at']
        read_only_fields = fields
