"""Celery tasks for the booking domain."""

from __future__ import annotations

from datetime import timedelta

import structlog
from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from .models import Booking
from .services import BookingError, complete_booking, expire_booking, start_booking

logger = structlog.get_logger(__name__)


@shared_task(name="bookings.expire_booking_hold")
def expire_booking_hold(booking_id: str) -> bool:
    """Cancel a single booking if its payment hold has run out."""
    try:
        booking = Booking.objects.get(pk=booking_id)
    except Booking.DoesNotExist:
        return False
    return expire_booking(booking)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> dict[str, int]:
    """Cancel pending bookings whose payment hold has expired. Runs every minute."""
    expired_count = 0
    candidates = Booking.objects.filter(
        status=Booking.Status.PENDING,
        expires_at__lte=timezone.now(),
    )
    for booking in candidates:
        if expire_booking(booking):
            expired_count += 1

    if expired_count:
        logger.info("bookings.expired_batch", expired=expired_count)
    return {"expired": expired_count}


@shared_task(name="bookings.activate_started_bookings")
def activate_started_bookings() -> dict[str, int]:
    """Move confirmed bookings to ACTIVE once check-in day arrives. Runs hourly."""
    today = timezone.localdate()
    updated_count = 0

    for booking in Booking.objects.filter(status=Booking.Status.CONFIRMED, check_in__lte=today):
        try:
            start_booking(booking, today=today)
        except BookingError as exc:
            logger.warning("booking.activate_failed", booking=booking.short_id, error=str(exc))
            continue
        updated_count += 1

    if updated_count:
        logger.info("bookings.activated_batch", activated=updated_count)
    return {"activated": updated_count}


@shared_task(name="bookings.complete_finished_bookings")
def complete_finished_bookings() -> dict[str, int]:
    """Complete active bookings once check-out day arrives. Runs hourly."""
    today = timezone.localdate()
    completed_count = 0

    for booking in Booking.objects.filter(status=Booking.Status.ACTIVE, check_out__lte=today):
        try:
            complete_booking(booking)
        except BookingError as exc:
            logger.warning("booking.complete_failed", booking=booking.short_id, error=str(exc))
            continue
        completed_count += 1

    if completed_count:
        logger.info("bookings.completed_batch", completed=completed_count)
    return {"completed": completed_count}


@shared_task(name="bookings.send_upcoming_booking_reminders")
def send_upcoming_booking_reminders() -> dict[str, int]:
    """Remind renters the day before check-in. Runs every 6 hours."""
    from apps.notifications.models import Notification
    from apps.notifications.tasks import notify_booking_event

    tomorrow = timezone.localdate() + timedelta(days=1)
    sent_count = 0

    upcoming = Booking.objects.filter(status=Booking.Status.CONFIRMED, check_in=tomorrow)
    for booking in upcoming:
        # The task runs several times a day; remind once per booking.
        already_sent = Notification.objects.filter(
            user_id=booking.renter_id,
            event=Notification.Event.BOOKING_REMINDER,
            payload__booking=str(booking.pk),
        ).exists()
        if already_sent:
            continue
        notify_booking_event.delay(str(booking.pk), "reminder")
        sent_count += 1

    if sent_count:
        logger.info("bookings.reminders_sent", sent=sent_count)
    return {"sent": sent_count}
