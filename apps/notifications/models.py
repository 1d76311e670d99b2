"""Notification model.

A notification is addressed to one user and describes a single domain
event. The ``event`` value doubles as the realtime event name clients
subscribe to when polling with ``?since=``.
"""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Notification(models.Model):
    """A message sent to a user about some event."""

    class Event(models.TextChoices):
        BOOKING_CREATED = "booking.created", _("Booking created")
        BOOKING_UPDATED = "booking.updated", _("Booking updated")
        BOOKING_REMINDER = "booking.reminder", _("Booking reminder")
        PAYMENT_SUCCEEDED = "payment.succeeded", _("Payment succeeded")
        PAYMENT_FAILED = "payment.failed", _("Payment failed")
        MESSAGE_CREATED = "message.created", _("New message")
        REVIEW_REQUESTED = "review.requested", _("Review requested")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications'
    )
    event = models.CharField(max_length=32, choices=Event.choices, db_index=True)
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    payload = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [models.Index(fields=['user', 'is_read'])]

    def __str__(self) -> str:
        return f"{self.event} to {self.user_id}: {self.title}"

    def mark_read(self) -> None:
        if self.is_read:
            return
        self.is_read = True
        self.read_at = timezone.now()
        self.save(update_fields=['is_read', 'read_at'])
