"""Messaging models for Dokkerr.

Renters and dock owners talk in two-person conversations. A
conversation may be about a listing or a specific booking, which gives
both sides context when the thread opens.
"""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.core.validators import MaxLengthValidator, MinLengthValidator  # type: ignore
from django.db import models, transaction  # type: ignore
from django.db.models import F  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.infrastructure.models import ShortIdModel

MAX_MESSAGE_LENGTH = 5000
PREVIEW_LENGTH = 200


def ordered_pair(first, second):
    """Participants are stored in a stable order so each pair maps to one row."""
    return (first, second) if str(first.pk) < str(second.pk) else (second, first)


class Conversation(ShortIdModel):
    """A thread between exactly two users."""

    user1 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_user1",
    )
    user2 = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversations_as_user2",
    )

    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conversations",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conversations",
    )

    last_message_at = models.DateTimeField(null=True, blank=True)
    last_message_preview = models.CharField(max_length=PREVIEW_LENGTH, blank=True)

    user1_unread_count = models.PositiveIntegerField(default=0)
    user2_unread_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Conversation")
        verbose_name_plural = _("Conversations")
        ordering = ["-last_message_at", "-created_at"]
        indexes = [
            models.Index(fields=["user1", "-last_message_at"]),
            models.Index(fields=["user2", "-last_message_at"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(user1=models.F("user2")),
                name="messaging_conversation_different_users",
            ),
            models.UniqueConstraint(
                fields=["user1", "user2", "listing"],
                name="messaging_conversation_unique_listing",
            ),
            models.UniqueConstraint(
                fields=["user1", "user2"],
                condition=models.Q(listing__isnull=True),
                name="messaging_conversation_unique_general",
            ),
        ]

    def __str__(self) -> str:
        context = f" about {self.listing_id}" if self.listing_id else ""
        return f"Conversation #{self.short_id} between {self.user1_id} and {self.user2_id}{context}"

    def is_participant(self, user) -> bool:
        return user.pk in (self.user1_id, self.user2_id)

    def get_other_user(self, user):
        if user.pk == self.user1_id:
            return self.user2
        if user.pk == self.user2_id:
            return self.user1
        return None

    def get_unread_count(self, user) -> int:
        if user.pk == self.user1_id:
            return self.user1_unread_count
        if user.pk == self.user2_id:
            return self.user2_unread_count
        return 0

    def mark_as_read(self, user) -> int:
        """Mark everything the other side sent as read. Returns the number of messages touched."""
        if not self.is_participant(user):
            return 0
        counter = "user1_unread_count" if user.pk == self.user1_id else "user2_unread_count"
        with transaction.atomic():
            updated = (
                self.messages.filter(is_read=False)
                .exclude(sender=user)
                .update(is_read=True, read_at=timezone.now())
            )
            setattr(self, counter, 0)
            self.save(update_fields=[counter])
        return updated


class Message(ShortIdModel):
    """A single text message in a conversation."""

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_messages",
    )
    body = models.TextField(validators=[MinLengthValidator(1), MaxLengthValidator(MAX_MESSAGE_LENGTH)])

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Message")
        verbose_name_plural = _("Messages")
        ordering = ["sent_at"]
        indexes = [
            models.Index(fields=["conversation", "sent_at"]),
            models.Index(fields=["conversation", "is_read"]),
        ]

    def __str__(self) -> str:
        preview = self.body[:50] + "..." if len(self.body) > 50 else self.body
        return f"Message from {self.sender_id} at {self.sent_at}: {preview}"

    @property
    def recipient(self):
        return self.conversation.get_other_user(self.sender)

    def save(self, *args, **kwargs):  # type: ignore
        """Update the conversation summary when a message is first stored."""
        is_new = self._state.adding
        super().save(*args, **kwargs)

        if is_new:
            conversation = self.conversation
            counter = (
                "user2_unread_count" if self.sender_id == conversation.user1_id else "user1_unread_count"
            )
            Conversation.objects.filter(pk=conversation.pk).update(
                last_message_at=self.sent_at,
                last_message_preview=self.body[:PREVIEW_LENGTH],
                updated_at=timezone.now(),
                **{counter: F(counter) + 1},
            )
            conversation.refresh_from_db(
                fields=["last_message_at", "last_message_preview", "user1_unread_count", "user2_unread_count", "updated_at"]
            )
