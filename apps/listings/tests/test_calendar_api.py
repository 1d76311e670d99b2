"""Tests for the listing calendar, owner blocks and access codes."""

from __future__ import annotations

from datetime import timedelta

from django.db import connection
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.models import Booking
from apps.listings.models import ListingAccessInfo, ListingAccessLog, ListingAvailability
from apps.users.models import User

from .factories import make_booking, make_listing, make_user


class ListingCalendarAPITests(APITestCase):
    def setUp(self) -> None:
        self.owner = make_user("owner@example.com", User.Role.OWNER)
        self.renter = make_user("renter@example.com")
        self.listing = make_listing(self.owner)
        self.today = timezone.localdate()
        self.client.force_authenticate(self.owner)

    def _availability_url(self):
        return reverse("listing-availability", args=[self.listing.short_id])

    def _block(self, start_offset: int, end_offset: int) -> dict:
        return {
            "start_date": str(self.today + timedelta(days=start_offset)),
            "end_date": str(self.today + timedelta(days=end_offset)),
            "status": ListingAvailability.Status.MAINTENANCE,
            "reason": "Dock repairs",
        }

    def test_owner_blocks_dates(self) -> None:
        response = self.client.post(self._availability_url(), self._block(3, 5), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["source"], ListingAvailability.Source.MANUAL)
        self.assertEqual(self.listing.availability_periods.count(), 1)

    def test_cannot_block_booked_status(self) -> None:
        payload = {**self._block(3, 5), "status": ListingAvailability.Status.BOOKED}
        response = self.client.post(self._availability_url(), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_block_cannot_overlap_existing_block(self) -> None:
        self.client.post(self._availability_url(), self._block(1, 3), format="json")
        response = self.client.post(self._availability_url(), self._block(2, 4), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_block_cannot_overlap_booking(self) -> None:
        make_booking(self.renter, self.listing, check_in=self.today + timedelta(days=2), nights=2)
        response = self.client.post(self._availability_url(), self._block(3, 6), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("booking", response.data["error"]["message"])

    def test_adjacent_block_is_allowed(self) -> None:
        self.client.post(self._availability_url(), self._block(1, 3), format="json")
        response = self.client.post(self._availability_url(), self._block(3, 4), format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)

    def test_other_user_cannot_read_blocks(self) -> None:
        self.client.force_authenticate(self.renter)
        response = self.client.get(self._availability_url())
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_delete_manual_block(self) -> None:
        block = ListingAvailability.objects.create(
            listing=self.listing,
            start_date=self.today + timedelta(days=1),
            end_date=self.today + timedelta(days=2),
        )
        url = reverse("listing-availability-detail", args=[self.listing.short_id, block.id])
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ListingAvailability.objects.filter(pk=block.pk).exists())

    def test_booking_period_cannot_be_deleted_directly(self) -> None:
        booking = make_booking(self.renter, self.listing)
        url = reverse("listing-availability-detail", args=[self.listing.short_id, booking.reserved_period.id])
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_public_calendar_marks_nights(self) -> None:
        ListingAvailability.objects.create(
            listing=self.listing,
            start_date=self.today + timedelta(days=1),
            end_date=self.today + timedelta(days=2),
            status=ListingAvailability.Status.BLOCKED,
        )
        make_booking(self.renter, self.listing, check_in=self.today + timedelta(days=3), nights=2)

        self.client.force_authenticate(None)
        response = self.client.get(
            reverse("listing-calendar", args=[self.listing.short_id]),
            {"start": str(self.today), "end": str(self.today + timedelta(days=6))},
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        statuses = [day["status"] for day in response.data["days"]]
        self.assertEqual(statuses, ["available", "blocked", "available", "booked", "booked", "available"])

    def test_calendar_defaults_to_thirty_days(self) -> None:
        response = self.client.get(reverse("listing-calendar", args=[self.listing.short_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["days"]), 30)

    def test_calendar_rejects_long_ranges(self) -> None:
        response = self.client.get(
            reverse("listing-calendar", args=[self.listing.short_id]),
            {"start": str(self.today), "end": str(self.today + timedelta(days=400))},
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ListingAccessInfoAPITests(APITestCase):
    def setUp(self) -> None:
        self.owner = make_user("owner@example.com", User.Role.OWNER)
        self.renter = make_user("renter@example.com")
        self.listing = make_listing(self.owner)
        self.url = reverse("listing-access-info", args=[self.listing.short_id])
        ListingAccessInfo.objects.create(listing=self.listing, gate_code="4321", slip_lock_code="", instructions="Blue gate")

    def test_owner_updates_codes_encrypted_at_rest(self) -> None:
        self.client.force_authenticate(self.owner)
        response = self.client.put(
            self.url,
            {"gate_code": "1111", "slip_lock_code": "2222", "instructions": "Use the north gate"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        info = ListingAccessInfo.objects.get(listing=self.listing)
        self.assertEqual(info.gate_code, "1111")
        with connection.cursor() as cursor:
            cursor.execute(f"SELECT gate_code FROM {ListingAccessInfo._meta.db_table} WHERE id = %s", [info.pk])
            raw = cursor.fetchone()[0]
        self.assertNotEqual(raw, "1111")

    def test_renter_without_booking_is_denied(self) -> None:
        self.client.force_authenticate(self.renter)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(ListingAccessLog.objects.exists())

    def test_pending_booking_does_not_reveal_codes(self) -> None:
        make_booking(self.renter, self.listing, check_in=timezone.localdate())
        self.client.force_authenticate(self.renter)
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_renter_during_confirmed_stay_reads_codes(self) -> None:
        booking = make_booking(
            self.renter,
            self.listing,
            check_in=timezone.localdate(),
            status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.client.force_authenticate(self.renter)
        response = self.client.get(self.url, REMOTE_ADDR="203.0.113.7")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["gate_code"], "4321")

        log = ListingAccessLog.objects.get()
        self.assertEqual(log.accessed_by, self.renter)
        self.assertEqual(log.field_name, "gate_code")
        self.assertEqual(log.ip_address, "203.0.113.7")
        self.assertIn(booking.short_id, log.reason)

    def test_renter_cannot_update_codes(self) -> None:
        self.client.force_authenticate(self.renter)
        response = self.client.put(self.url, {"gate_code": "0000"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
