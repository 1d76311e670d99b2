import os

from celery import Celery
from celery.schedules import crontab  # type: ignore

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("dokkerr")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Cancel bookings whose payment hold ran out - every minute
    "expire-pending-bookings": {
        "task": "bookings.expire_pending_bookings",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Move confirmed bookings to ACTIVE on the arrival date - hourly
    "activate-started-bookings": {
        "task": "bookings.activate_started_bookings",
        "schedule": crontab(minute=0),
    },
    # Complete bookings after departure - hourly at :15
    "complete-finished-bookings": {
        "task": "bookings.complete_finished_bookings",
        "schedule": crontab(minute=15),
    },
    # Arrival reminders - every 6 hours
    "send-upcoming-booking-reminders": {
        "task": "bookings.send_upcoming_booking_reminders",
        "schedule": crontab(minute=0, hour="*/6"),
    },
}
