"""Unit tests for booking rules and periodic tasks."""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db import connection, transaction
from django.utils import timezone

from apps.bookings import services, tasks
from apps.bookings.models import Booking
from apps.listings.models import Listing, ListingAvailability
from apps.listings.tests.factories import make_booking, make_listing, make_user
from apps.notifications.models import Notification
from apps.notifications.tasks import notify_booking_event
from apps.users.models import User

pytestmark = pytest.mark.django_db


@pytest.fixture
def owner():
    return make_user("owner@example.com", User.Role.OWNER)


@pytest.fixture
def renter():
    return make_user("renter@example.com")


@pytest.fixture
def listing(owner):
    return make_listing(owner)


@pytest.mark.parametrize(
    "policy,days,expected",
    [
        (Listing.CancellationPolicy.FLEXIBLE, 1, Decimal("1")),
        (Listing.CancellationPolicy.FLEXIBLE, 0, Decimal("0")),
        (Listing.CancellationPolicy.MODERATE, 5, Decimal("1")),
        (Listing.CancellationPolicy.MODERATE, 4, Decimal("0.5")),
        (Listing.CancellationPolicy.MODERATE, 0, Decimal("0")),
        (Listing.CancellationPolicy.STRICT, 7, Decimal("0.5")),
        (Listing.CancellationPolicy.STRICT, 6, Decimal("0")),
    ],
)
def test_refund_ratio(policy, days, expected):
    assert services.refund_ratio(policy, days) == expected


def test_owner_cancellation_always_refunds_in_full():
    assert services.refund_ratio(Listing.CancellationPolicy.STRICT, 0, cancelled_by_owner=True) == Decimal("1")


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        services.refund_ratio("lenient", 3)


def test_quote_booking_adds_fees(listing):
    check_in = timezone.localdate() + timedelta(days=3)
    quote = services.quote_booking(listing, check_in, check_in + timedelta(days=4))
    assert quote.nights == 4
    assert quote.subtotal.amount == Decimal("200.00")
    assert quote.service_fee.amount == Decimal("20.00")
    assert quote.total.amount == Decimal("240.00")
    assert quote.currency == "USD"


def test_calculate_refund_for_unpaid_booking_is_zero(renter, listing):
    booking = make_booking(renter, listing)
    refund = services.calculate_refund(booking, Booking.CancellationSource.RENTER)
    assert refund.amount == 0


def test_calculate_refund_uses_days_before_check_in(renter, listing):
    listing.cancellation_policy = Listing.CancellationPolicy.STRICT
    listing.save()
    today = timezone.localdate()
    booking = make_booking(
        renter,
        listing,
        check_in=today + timedelta(days=8),
        payment_status=Booking.PaymentStatus.PAID,
    )
    assert services.calculate_refund(booking, Booking.CancellationSource.RENTER, today=today).amount == Decimal("92.50")
    later = today + timedelta(days=2)
    assert services.calculate_refund(booking, Booking.CancellationSource.RENTER, today=later).amount == 0


def test_state_machine_rejects_skipping_steps(renter, listing):
    booking = make_booking(renter, listing)
    with pytest.raises(services.InvalidTransitionError):
        services.complete_booking(booking)


def test_mark_booking_paid_confirms_and_clears_hold(renter, listing):
    booking = make_booking(renter, listing, expires_at=timezone.now() + timedelta(minutes=30))
    booking = services.mark_booking_paid(booking)
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED
    assert booking.payment_status == Booking.PaymentStatus.PAID
    assert booking.expires_at is None
    assert booking.confirmed_at is not None


def test_ensure_available_ignores_cancelled_bookings(renter, listing):
    check_in = timezone.localdate() + timedelta(days=4)
    make_booking(renter, listing, check_in=check_in, status=Booking.Status.CANCELLED)
    services.ensure_listing_is_available(listing, check_in, check_in + timedelta(days=2))


def test_ensure_available_rejects_manual_block(listing):
    check_in = timezone.localdate() + timedelta(days=4)
    ListingAvailability.objects.create(listing=listing, start_date=check_in, end_date=check_in + timedelta(days=1))
    with pytest.raises(services.BookingConflictError):
        services.ensure_listing_is_available(listing, check_in, check_in + timedelta(days=3))


def test_expired_hold_cancels_booking_and_releases_dates(renter, listing):
    booking = make_booking(renter, listing, expires_at=timezone.now() - timedelta(minutes=1))
    result = tasks.expire_pending_bookings()
    booking.refresh_from_db()
    assert result == {"expired": 1}
    assert booking.status == Booking.Status.CANCELLED
    assert booking.payment_status == Booking.PaymentStatus.FAILED
    assert booking.cancellation_source == Booking.CancellationSource.SYSTEM
    assert not ListingAvailability.objects.filter(booking_id=booking.pk).exists()


def test_hold_task_leaves_paid_bookings_alone(renter, listing):
    booking = make_booking(
        renter,
        listing,
        status=Booking.Status.CONFIRMED,
        payment_status=Booking.PaymentStatus.PAID,
        expires_at=timezone.now() - timedelta(minutes=1),
    )
    assert tasks.expire_booking_hold(str(booking.pk)) is False
    booking.refresh_from_db()
    assert booking.status == Booking.Status.CONFIRMED


def test_activate_and_complete_tasks(renter, listing):
    today = timezone.localdate()
    arriving = make_booking(
        renter,
        listing,
        check_in=today,
        nights=2,
        status=Booking.Status.CONFIRMED,
        payment_status=Booking.PaymentStatus.PAID,
    )
    leaving = make_booking(
        renter,
        listing,
        check_in=today - timedelta(days=3),
        nights=3,
        status=Booking.Status.ACTIVE,
        payment_status=Booking.PaymentStatus.PAID,
    )

    assert tasks.activate_started_bookings() == {"activated": 1}
    assert tasks.complete_finished_bookings() == {"completed": 1}

    arriving.refresh_from_db()
    leaving.refresh_from_db()
    assert arriving.status == Booking.Status.ACTIVE
    assert leaving.status == Booking.Status.COMPLETED


def test_reminders_are_sent_once(renter, listing):
    booking = make_booking(
        renter,
        listing,
        check_in=timezone.localdate() + timedelta(days=1),
        status=Booking.Status.CONFIRMED,
        payment_status=Booking.PaymentStatus.PAID,
    )
    assert tasks.send_upcoming_booking_reminders() == {"sent": 1}
    assert tasks.send_upcoming_booking_reminders() == {"sent": 0}
    reminder = Notification.objects.get(event=Notification.Event.BOOKING_REMINDER)
    assert reminder.user == renter
    assert reminder.payload["booking"] == str(booking.pk)


@pytest.mark.django_db(transaction=True)
def test_status_notifications_are_queued_after_commit(renter, listing):
    booking = make_booking(renter, listing)
    queued = []

    def record(booking_id, event):
        queued.append((booking_id, event, connection.in_atomic_block, Booking.objects.get(pk=booking_id).status))

    with mock.patch.object(notify_booking_event, "delay", side_effect=record):
        services.cancel_booking(booking, source=Booking.CancellationSource.RENTER)

    assert queued == [(str(booking.pk), "updated", False, Booking.Status.CANCELLED)]


@pytest.mark.django_db(transaction=True)
def test_rolled_back_transition_queues_nothing(renter, listing):
    booking = make_booking(renter, listing)

    with mock.patch.object(notify_booking_event, "delay") as delay:
        with pytest.raises(RuntimeError):
            with transaction.atomic():
                services.cancel_booking(booking, source=Booking.CancellationSource.OWNER)
                raise RuntimeError("abort")

    delay.assert_not_called()
    booking.refresh_from_db()
    assert booking.status == Booking.Status.PENDING


def test_status_change_logs_plain_values(renter, listing):
    booking = make_booking(renter, listing)
    with mock.patch.object(services, "logger") as logger:
        services.cancel_booking(booking, source=Booking.CancellationSource.RENTER)

    changed = next(call for call in logger.info.call_args_list if call.args[0] == "booking.status_changed")
    assert changed.kwargs["status"] == "cancelled"
    assert type(changed.kwargs["status"]) is str
    assert type(changed.kwargs["previous"]) is str
