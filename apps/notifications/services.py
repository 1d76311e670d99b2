"""Notification services: in-app records and email delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore
from django.template.loader import render_to_string  # type: ignore
from django.utils.html import escape, strip_tags  # type: ignore

from .models import Notification

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking
    from apps.messaging.models import Message
    from apps.users.models import User

logger = structlog.get_logger(__name__)

DATE_FORMAT = "%b %d, %Y"


# ============================================================================
# IN-APP NOTIFICATIONS
# ============================================================================

def notify(
    user: "User",
    event: str,
    title: str,
    body: str = "",
    payload: dict[str, Any] | None = None,
) -> Notification:
    """Record an in-app notification for ``user``."""
    notification = Notification.objects.create(
        user=user,
        event=event,
        title=title,
        body=body,
        payload=payload or {},
    )
    logger.info("notification.created", user=str(user.pk), notification_event=event)
    return notification


def booking_payload(booking: "Booking") -> dict[str, Any]:
    return {
        "booking": str(booking.pk),
        "short_id": booking.short_id,
        "listing": str(booking.listing_id),
        "status": booking.status,
        "payment_status": booking.payment_status,
    }


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(
    recipient_email: str,
    subject: str,
    context: dict,
    template_name: str | None = None,
    *,
    html_message: str | None = None,
) -> bool:
    """Send one email. Failures are logged and reported as ``False``."""
    try:
        if html_message:
            text_message = strip_tags(html_message)
        elif template_name:
            html_message = render_to_string(template_name, context)
            text_message = strip_tags(html_message)
        else:
            text_message = context.get("message", "")

        send_mail(
            subject=subject,
            message=text_message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            html_message=html_message,
            fail_silently=False,
        )
    except Exception:
        logger.exception("email.failed", recipient=recipient_email, subject=subject)
        return False

    logger.info("email.sent", recipient=recipient_email, subject=subject)
    return True


def _booking_details(booking: "Booking") -> str:
    listing = booking.listing
    return f"""
        <ul>
            <li><strong>Booking:</strong> #{booking.short_id}</li>
            <li><strong>Slip:</strong> {escape(listing.title)}</li>
            <li><strong>Location:</strong> {escape(listing.city)}, {escape(listing.state)}</li>
            <li><strong>Dates:</strong> {booking.check_in.strftime(DATE_FORMAT)} to {booking.check_out.strftime(DATE_FORMAT)}</li>
            <li><strong>Nights:</strong> {booking.nights}</li>
            <li><strong>Total:</strong> {booking.total_price} {booking.currency}</li>
        </ul>
    """


def _wrap(greeting_name: str, body: str) -> str:
    return f"""
    <html>
    <body>
        <h2>Hi {escape(greeting_name)},</h2>
        {body}
        <p>Fair winds,<br>The Dokkerr team</p>
    </body>
    </html>
    """


def send_booking_created_email(booking: "Booking") -> bool:
    """Tell the owner a renter requested their slip."""
    owner = booking.listing.owner
    renter = booking.renter
    html_message = _wrap(
        owner.display_name,
        f"""
        <p><strong>{escape(renter.display_name)}</strong> requested your slip.</p>
        {_booking_details(booking)}
        <p>Boat: {escape(booking.boat_name or "not specified")}, {booking.boat_length_ft} ft.</p>
        """,
    )
    return send_email_notification(
        recipient_email=owner.email,
        subject=f"New booking request #{booking.short_id}",
        context={},
        html_message=html_message,
    )


def send_booking_confirmed_email(booking: "Booking") -> bool:
    renter = booking.renter
    html_message = _wrap(
        renter.display_name,
        f"""
        <p>Your booking is confirmed.</p>
        {_booking_details(booking)}
        <p>Access codes for the slip become available in the app on your arrival day.</p>
        """,
    )
    return send_email_notification(
        recipient_email=renter.email,
        subject=f"Booking #{booking.short_id} confirmed",
        context={},
        html_message=html_message,
    )


def send_booking_cancelled_email(booking: "Booking") -> bool:
    """Notify both sides about a cancellation, including the refund."""
    reason = booking.cancellation_reason or "No reason given."
    refund = f"{booking.refund_amount} {booking.currency}"
    sent = True
    for user in (booking.renter, booking.listing.owner):
        html_message = _wrap(
            user.display_name,
            f"""
            <p>Booking #{booking.short_id} was cancelled.</p>
            {_booking_details(booking)}
            <p><strong>Reason:</strong> {escape(reason)}</p>
            <p><strong>Refund:</strong> {refund}</p>
            """,
        )
        sent &= send_email_notification(
            recipient_email=user.email,
            subject=f"Booking #{booking.short_id} cancelled",
            context={},
            html_message=html_message,
        )
    return sent


def send_booking_reminder_email(booking: "Booking") -> bool:
    """Arrival reminder sent the day before check-in."""
    renter = booking.renter
    listing = booking.listing
    html_message = _wrap(
        renter.display_name,
        f"""
        <p>Your stay at <strong>{escape(listing.title)}</strong> starts tomorrow.</p>
        {_booking_details(booking)}
        <p><strong>Address:</strong> {escape(listing.address)}</p>
        """,
    )
    return send_email_notification(
        recipient_email=renter.email,
        subject=f"Reminder: arrival tomorrow at {listing.title}",
        context={},
        html_message=html_message,
    )


def send_review_request_email(booking: "Booking") -> bool:
    renter = booking.renter
    review_url = f"{settings.SITE_URL}/bookings/{booking.short_id}/review"
    html_message = _wrap(
        renter.display_name,
        f"""
        <p>Thanks for staying at <strong>{escape(booking.listing.title)}</strong>.</p>
        <p>How was it? <a href="{review_url}">Leave a review</a> to help other boaters.</p>
        """,
    )
    return send_email_notification(
        recipient_email=renter.email,
        subject="How was your stay?",
        context={},
        html_message=html_message,
    )


# ============================================================================
# BOOKING EVENTS
# ============================================================================

STATUS_TITLES = {
    "pending": "Booking #{code} is awaiting payment",
    "confirmed": "Booking #{code} confirmed",
    "active": "Booking #{code} has started",
    "completed": "Booking #{code} completed",
    "cancelled": "Booking #{code} cancelled",
}


def notify_booking_created(booking: "Booking") -> None:
    payload = booking_payload(booking)
    listing = booking.listing
    notify(
        booking.listing.owner,
        Notification.Event.BOOKING_CREATED,
        f"New booking request #{booking.short_id}",
        f"{booking.renter.display_name} requested {listing.title} "
        f"from {booking.check_in.strftime(DATE_FORMAT)}.",
        payload,
    )
    notify(
        booking.renter,
        Notification.Event.BOOKING_CREATED,
        f"Booking #{booking.short_id} created",
        f"Complete payment to secure {listing.title}.",
        payload,
    )
    send_booking_created_email(booking)


def notify_booking_updated(booking: "Booking") -> None:
    """Fan out ``booking.updated`` to renter and owner, plus status emails."""
    payload = booking_payload(booking)
    title = STATUS_TITLES.get(booking.status, "Booking #{code} updated").format(code=booking.short_id)
    for user in (booking.renter, booking.listing.owner):
        notify(user, Notification.Event.BOOKING_UPDATED, title, booking.listing.title, payload)

    if booking.status == "confirmed":
        send_booking_confirmed_email(booking)
    elif booking.status == "cancelled":
        send_booking_cancelled_email(booking)
    elif booking.status == "completed":
        notify(
            booking.renter,
            Notification.Event.REVIEW_REQUESTED,
            "How was your stay?",
            f"Leave a review for {booking.listing.title}.",
            payload,
        )
        send_review_request_email(booking)


def notify_booking_reminder(booking: "Booking") -> None:
    notify(
        booking.renter,
        Notification.Event.BOOKING_REMINDER,
        "Arrival tomorrow",
        f"Your stay at {booking.listing.title} starts tomorrow.",
        booking_payload(booking),
    )
    send_booking_reminder_email(booking)


BOOKING_EVENT_HANDLERS = {
    "created": notify_booking_created,
    "updated": notify_booking_updated,
    "reminder": notify_booking_reminder,
}


def notify_new_message(message: "Message") -> Notification | None:
    """Tell the recipient about a new chat message."""
    recipient = message.recipient
    if recipient is None:
        return None
    conversation = message.conversation
    return notify(
        recipient,
        Notification.Event.MESSAGE_CREATED,
        f"New message from {message.sender.display_name}",
        message.body[:140],
        {
            "conversation": str(conversation.pk),
            "short_id": conversation.short_id,
            "message": str(message.pk),
        },
    )
