"""Integration tests for booking API endpoints."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.listings.models import Listing, ListingAvailability
from apps.listings.tests.factories import make_booking, make_listing, make_user
from apps.notifications.models import Notification
from apps.users.models import User


class BookingCreateAPITests(APITestCase):
    """Booking requests, price freezing and date conflicts."""

    def setUp(self) -> None:
        self.renter = make_user("renter@example.com", first_name="Quint")
        self.owner = make_user("owner@example.com", User.Role.OWNER)
        self.listing = make_listing(self.owner)
        self.client.force_authenticate(self.renter)
        self.list_url = reverse("booking-list")
        self.check_in = timezone.localdate() + timedelta(days=10)

    def _payload(self, check_in: date, nights: int = 3, **overrides) -> dict:
        payload = {
            "listing": self.listing.short_id,
            "check_in": str(check_in),
            "check_out": str(check_in + timedelta(days=nights)),
            "boat_name": "Orca",
            "boat_length_ft": "30.0",
        }
        payload.update(overrides)
        return payload

    def test_renter_can_create_booking(self) -> None:
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["status"], Booking.Status.PENDING)
        self.assertEqual(response.data["payment_status"], Booking.PaymentStatus.UNPAID)
        self.assertEqual(response.data["nights"], 3)
        self.assertEqual(response.data["total_price"], "185.00")
        self.assertEqual(response.data["listing"]["short_id"], self.listing.short_id)
        self.assertIsNotNone(response.data["expires_at"])

        booking = Booking.objects.get(pk=response.data["id"])
        self.assertEqual(booking.reserved_period.status, ListingAvailability.Status.BOOKED)
        self.assertEqual(booking.reserved_period.end_date, self.check_in + timedelta(days=3))

    def test_create_notifies_owner_and_renter(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            self.client.post(self.list_url, self._payload(self.check_in), format="json")
        events = set(Notification.objects.values_list("user__email", "event"))
        self.assertIn((self.owner.email, Notification.Event.BOOKING_CREATED), events)
        self.assertIn((self.renter.email, Notification.Event.BOOKING_CREATED), events)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, [self.owner.email])

    def test_price_is_frozen_at_booking_time(self) -> None:
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        Listing.objects.filter(pk=self.listing.pk).update(nightly_rate=Decimal("999.00"))
        booking = Booking.objects.get(pk=response.data["id"])
        self.assertEqual(booking.nightly_rate, Decimal("50.00"))

    def test_overlapping_booking_is_rejected(self) -> None:
        make_booking(make_user("first@example.com"), self.listing, check_in=self.check_in, nights=3)
        response = self.client.post(
            self.list_url,
            self._payload(self.check_in + timedelta(days=2)),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("non_field_errors", response.data["error"]["details"])

    def test_back_to_back_bookings_are_allowed(self) -> None:
        make_booking(make_user("first@example.com"), self.listing, check_in=self.check_in, nights=3)
        response = self.client.post(
            self.list_url,
            self._payload(self.check_in + timedelta(days=3)),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_cancelled_booking_frees_the_dates(self) -> None:
        make_booking(
            make_user("first@example.com"),
            self.listing,
            check_in=self.check_in,
            status=Booking.Status.CANCELLED,
        )
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_boat_must_fit_the_slip(self) -> None:
        response = self.client.post(
            self.list_url,
            self._payload(self.check_in, boat_length_ft="55.0"),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("40.0 ft", response.data["error"]["message"])

    def test_night_limits_are_enforced(self) -> None:
        self.listing.min_nights = 2
        self.listing.save()
        response = self.client.post(self.list_url, self._payload(self.check_in, nights=1), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(self.list_url, self._payload(self.check_in, nights=31), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_past_check_in_is_rejected(self) -> None:
        response = self.client.post(
            self.list_url,
            self._payload(timezone.localdate() - timedelta(days=1)),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_owner_cannot_book_own_listing(self) -> None:
        self.client.force_authenticate(self.owner)
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_draft_listing_cannot_be_booked(self) -> None:
        self.listing.status = Listing.Status.DRAFT
        self.listing.save()
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_listing_id(self) -> None:
        response = self.client.post(
            self.list_url,
            self._payload(self.check_in, listing="deadbeef"),
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("listing", response.data["error"]["details"])

    def test_booking_requires_authentication(self) -> None:
        self.client.force_authenticate(None)
        response = self.client.post(self.list_url, self._payload(self.check_in), format="json")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class BookingAccessAPITests(APITestCase):
    def setUp(self) -> None:
        self.renter = make_user("renter@example.com")
        self.owner = make_user("owner@example.com", User.Role.OWNER)
        self.outsider = make_user("outsider@example.com")
        self.listing = make_listing(self.owner)
        self.booking = make_booking(self.renter, self.listing)

    def test_renter_lists_own_bookings(self) -> None:
        make_booking(self.outsider, self.listing, check_in=timezone.localdate() + timedelta(days=20))
        self.client.force_authenticate(self.renter)
        response = self.client.get(reverse("booking-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([b["short_id"] for b in response.data["results"]], [self.booking.short_id])

    def test_owner_lists_bookings_on_their_listings(self) -> None:
        self.client.force_authenticate(self.owner)
        response = self.client.get(reverse("booking-list"), {"role": "owner", "status": "pending"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)

    def test_outsider_cannot_view_booking(self) -> None:
        self.client.force_authenticate(self.outsider)
        response = self.client.get(reverse("booking-detail", args=[self.booking.short_id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_owner_views_booking_by_uuid(self) -> None:
        self.client.force_authenticate(self.owner)
        response = self.client.get(reverse("booking-detail", args=[str(self.booking.pk)]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["renter"]["short_id"], self.renter.short_id)


class BookingLifecycleAPITests(APITestCase):
    def setUp(self) -> None:
        self.renter = make_user("renter@example.com")
        self.owner = make_user("owner@example.com", User.Role.OWNER)
        self.listing = make_listing(self.owner)
        self.today = timezone.localdate()

    def _url(self, name: str, booking: Booking) -> str:
        return reverse(f"booking-{name}", args=[booking.short_id])

    def test_renter_cancels_unpaid_booking(self) -> None:
        booking = make_booking(self.renter, self.listing)
        self.client.force_authenticate(self.renter)
        response = self.client.post(self._url("cancel", booking), {"reason": "Weather"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Booking.Status.CANCELLED)
        self.assertEqual(response.data["cancellation_source"], Booking.CancellationSource.RENTER)
        self.assertEqual(response.data["refund_amount"], "0.00")
        self.assertFalse(ListingAvailability.objects.filter(listing=self.listing).exists())

    @mock.patch("apps.payments.services.refund_booking_payment")
    def test_renter_cancellation_uses_policy_ratio(self, refund_mock) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=self.today + timedelta(days=3),
            status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.client.force_authenticate(self.renter)
        response = self.client.post(self._url("cancel", booking), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        # Moderate policy, 3 days out: half of 185.00.
        self.assertEqual(response.data["refund_amount"], "92.50")
        self.assertEqual(response.data["payment_status"], Booking.PaymentStatus.REFUNDED)
        refund_mock.assert_called_once()
        self.assertEqual(refund_mock.call_args.args[1].amount, Decimal("92.50"))

    @mock.patch("apps.payments.services.refund_booking_payment")
    def test_owner_cancellation_refunds_in_full(self, refund_mock) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=self.today + timedelta(days=1),
            status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.client.force_authenticate(self.owner)
        response = self.client.post(self._url("cancel", booking), {"reason": "Dock damaged"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["cancellation_source"], Booking.CancellationSource.OWNER)
        self.assertEqual(response.data["refund_amount"], "185.00")

    def test_completed_booking_cannot_be_cancelled(self) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=self.today - timedelta(days=5),
            status=Booking.Status.COMPLETED,
        )
        self.client.force_authenticate(self.renter)
        response = self.client.post(self._url("cancel", booking), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_confirm_requires_payment(self) -> None:
        booking = make_booking(self.renter, self.listing)
        self.client.force_authenticate(self.owner)
        response = self.client.post(self._url("confirm", booking))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        Booking.objects.filter(pk=booking.pk).update(payment_status=Booking.PaymentStatus.PAID)
        response = self.client.post(self._url("confirm", booking))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Booking.Status.CONFIRMED)

    def test_renter_cannot_confirm(self) -> None:
        booking = make_booking(self.renter, self.listing, payment_status=Booking.PaymentStatus.PAID)
        self.client.force_authenticate(self.renter)
        response = self.client.post(self._url("confirm", booking))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_check_in_waits_for_arrival_day(self) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=self.today + timedelta(days=2),
            status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.client.force_authenticate(self.owner)
        response = self.client.post(self._url("check-in", booking))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_check_in_and_check_out(self) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=self.today,
            status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.client.force_authenticate(self.owner)
        response = self.client.post(self._url("check-in", booking))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Booking.Status.ACTIVE)

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self._url("check-out", booking))
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], Booking.Status.COMPLETED)
        self.assertTrue(
            Notification.objects.filter(user=self.renter, event=Notification.Event.REVIEW_REQUESTED).exists()
        )
