"""Conversation and message workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from django.db import transaction  # type: ignore
from django.db.models import Q  # type: ignore

from apps.notifications.services import notify_new_message

from .models import Conversation, Message, ordered_pair

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking
    from apps.listings.models import Listing
    from apps.users.models import User

logger = structlog.get_logger(__name__)


def conversations_for(user: "User"):
    return Conversation.objects.filter(Q(user1=user) | Q(user2=user)).select_related("user1", "user2", "listing", "booking")


def send_message(conversation: Conversation, sender: "User", body: str) -> Message:
    """Store a message and notify the other participant."""
    with transaction.atomic():
        message = Message.objects.create(conversation=conversation, sender=sender, body=body)
        notify_new_message(message)
    logger.info(
        "message.sent",
        conversation=str(conversation.pk),
        sender=str(sender.pk),
        length=len(body),
    )
    return message


def start_conversation(
    sender: "User",
    recipient: "User",
    body: str,
    *,
    listing: "Listing | None" = None,
    booking: "Booking | None" = None,
) -> tuple[Conversation, bool]:
    """Open the conversation for this pair and listing, or reuse it, then post ``body``."""
    if booking is not None and listing is None:
        listing = booking.listing
    user1, user2 = ordered_pair(sender, recipient)

    with transaction.atomic():
        conversation, created = Conversation.objects.get_or_create(
            user1=user1,
            user2=user2,
            listing=listing,
            defaults={"booking": booking},
        )
        if not created and booking is not None and conversation.booking_id != booking.pk:
            conversation.booking = booking
            conversation.save(update_fields=["booking", "updated_at"])
        send_message(conversation, sender, body)

    if created:
        logger.info(
            "conversation.started",
            conversation=str(conversation.pk),
            listing=str(listing.pk) if listing else None,
        )
    return conversation, created
