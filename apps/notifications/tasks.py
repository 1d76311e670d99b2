"""Celery tasks delivering notifications outside the request cycle."""

from __future__ import annotations

import structlog
from celery import shared_task  # type: ignore

from .services import BOOKING_EVENT_HANDLERS

logger = structlog.get_logger(__name__)


@shared_task(name="notifications.notify_booking_event")
def notify_booking_event(booking_id: str, event: str) -> bool:
    """Deliver in-app and email notifications for a booking event."""
    from apps.bookings.models import Booking

    handler = BOOKING_EVENT_HANDLERS.get(event)
    if handler is None:
        logger.warning("notification.unknown_booking_event", booking=booking_id, booking_event=event)
        return False

    try:
        booking = Booking.objects.select_related("renter", "listing", "listing__owner").get(pk=booking_id)
    except Booking.DoesNotExist:
        logger.error("notification.booking_missing", booking=booking_id, booking_event=event)
        return False

    handler(booking)
    return True
