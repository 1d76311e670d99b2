"""Booking domain models for Dokkerr."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import DateRange
from shared.infrastructure.models import ShortIdModel


class Booking(ShortIdModel):
    """A renter's reservation of a listing for ``[check_in, check_out)``."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending payment")
        CONFIRMED = "confirmed", _("Confirmed")
        ACTIVE = "active", _("Active")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", _("Unpaid")
        AUTHORIZED = "authorized", _("Authorized")
        PAID = "paid", _("Paid")
        REFUNDED = "refunded", _("Refunded")
        FAILED = "failed", _("Failed")

    class CancellationSource(models.TextChoices):
        RENTER = "renter", _("Renter")
        OWNER = "owner", _("Owner")
        SYSTEM = "system", _("System")

    # Statuses that hold the slip.
    LIVE_STATUSES = (Status.PENDING, Status.CONFIRMED, Status.ACTIVE)

    TRANSITIONS = {
        Status.PENDING: (Status.CONFIRMED, Status.CANCELLED),
        Status.CONFIRMED: (Status.ACTIVE, Status.CANCELLED),
        Status.ACTIVE: (Status.COMPLETED,),
        Status.COMPLETED: (),
        Status.CANCELLED: (),
    }

    TIMESTAMP_FIELDS = {
        Status.CONFIRMED: "confirmed_at",
        Status.ACTIVE: "started_at",
        Status.COMPLETED: "completed_at",
        Status.CANCELLED: "cancelled_at",
    }

    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.PROTECT,
        related_name="bookings",
    )
    check_in = models.DateField()
    check_out = models.DateField()
    boat_name = models.CharField(max_length=100, blank=True)
    boat_length_ft = models.DecimalField(max_digits=5, decimal_places=1)
    guests = models.PositiveSmallIntegerField(default=1)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    nightly_rate = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Nightly rate frozen at booking time."),
    )
    nights = models.PositiveSmallIntegerField()
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    cleaning_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    service_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    special_requests = models.TextField(blank=True)
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text=_("End of the payment hold; unpaid bookings are cancelled after it."),
    )
    confirmed_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_source = models.CharField(
        max_length=20,
        choices=CancellationSource.choices,
        blank=True,
    )
    cancellation_reason = models.CharField(max_length=255, blank=True)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["listing", "check_in", "check_out"]),
            models.Index(fields=["status"]),
            models.Index(fields=["status", "expires_at"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.short_id} for {self.listing_id}"

    @property
    def stay(self) -> DateRange:
        return DateRange(self.check_in, self.check_out)

    @property
    def is_live(self) -> bool:
        return self.status in self.LIVE_STATUSES

    def can_transition_to(self, status: str) -> bool:
        return status in self.TRANSITIONS.get(self.status, ())

    def should_expire(self) -> bool:
        return bool(self.expires_at and timezone.now() >= self.expires_at and self.status == self.Status.PENDING)

    def is_stakeholder(self, user) -> bool:
        return user.pk in (self.renter_id, self.listing.owner_id)
