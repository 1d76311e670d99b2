"""Listing domain models for Dokkerr.

A listing is a slip, dock, mooring, lift or dry-storage space offered
for nightly rental. Owners publish listings, block dates on the
calendar and keep gate and lock codes encrypted at rest.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.db.models import Avg, Count  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.text import slugify  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.infrastructure.fields import EncryptedCharField
from shared.infrastructure.models import ShortIdModel


class ListingStateError(Exception):
    """Publish/unpublish requested from a status that does not allow it."""


class ListingNotReadyError(Exception):
    """The listing lacks data required to go live."""


class Amenity(models.Model):
    """Facility or service available at a slip."""

    class Category(models.TextChoices):
        UTILITIES = "utilities", _("Utilities")
        FACILITIES = "facilities", _("Facilities")
        SERVICES = "services", _("Services")
        SECURITY = "security", _("Security")

    name = models.CharField(max_length=100, unique=True)
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.FACILITIES,
    )
    icon = models.CharField(
        max_length=100,
        blank=True,
        help_text=_("Frontend icon identifier."),
    )

    class Meta:
        verbose_name = _("Amenity")
        verbose_name_plural = _("Amenities")
        ordering = ["category", "name"]

    def __str__(self) -> str:
        return self.name


class Listing(ShortIdModel):
    """A rentable slip or dock."""

    class Status(models.TextChoices):
        DRAFT = "draft", _("Draft")
        ACTIVE = "active", _("Active")
        INACTIVE = "inactive", _("Inactive")

    class SlipType(models.TextChoices):
        SLIP = "slip", _("Slip")
        DOCK = "dock", _("Dock")
        MOORING = "mooring", _("Mooring")
        LIFT = "lift", _("Boat lift")
        DRY_STORAGE = "dry_storage", _("Dry storage")

    class CancellationPolicy(models.TextChoices):
        FLEXIBLE = "flexible", _("Flexible (full refund up to 1 day before)")
        MODERATE = "moderate", _("Moderate (full refund 5+ days, half 1+ day)")
        STRICT = "strict", _("Strict (half refund 7+ days)")

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="listings",
    )
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    description = models.TextField(blank=True)
    slip_type = models.CharField(max_length=20, choices=SlipType.choices, default=SlipType.SLIP)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)

    address = models.CharField(max_length=255)
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=2, default="US")
    latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("-90")), MaxValueValidator(Decimal("90"))],
    )
    longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("-180")), MaxValueValidator(Decimal("180"))],
    )

    max_boat_length_ft = models.DecimalField(
        max_digits=5,
        decimal_places=1,
        validators=[MinValueValidator(Decimal("1"))],
    )
    max_beam_ft = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    max_draft_ft = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    water_depth_ft = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)

    nightly_rate = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    cleaning_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    currency = models.CharField(max_length=3, default="USD")
    min_nights = models.PositiveSmallIntegerField(default=1, validators=[MinValueValidator(1)])
    max_nights = models.PositiveSmallIntegerField(default=30, validators=[MinValueValidator(1)])
    cancellation_policy = models.CharField(
        max_length=20,
        choices=CancellationPolicy.choices,
        default=CancellationPolicy.MODERATE,
    )
    instant_book = models.BooleanField(default=True)
    amenities = models.ManyToManyField(Amenity, blank=True, related_name="listings")
    rules = models.TextField(blank=True)

    rating_average = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    review_count = models.PositiveIntegerField(default=0)

    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Listing")
        verbose_name_plural = _("Listings")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["owner", "status"]),
            models.Index(fields=["latitude", "longitude"]),
            models.Index(fields=["city", "state"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(max_nights__gte=models.F("min_nights")),
                name="listing_min_max_nights_valid",
            ),
        ]

    def __str__(self) -> str:
        return self.title

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @staticmethod
    def check_bookable(latitude, longitude, nightly_rate) -> None:
        """Raise ``ListingNotReadyError`` unless the values allow the listing to be live."""
        if latitude is None or longitude is None:
            raise ListingNotReadyError("Listing needs coordinates before it can be published.")
        if not nightly_rate or nightly_rate <= 0:
            raise ListingNotReadyError("Listing needs a nightly rate above zero.")

    def publish(self) -> None:
        if self.status == self.Status.ACTIVE:
            raise ListingStateError("Listing is already active.")
        self.check_bookable(self.latitude, self.longitude, self.nightly_rate)
        self.status = self.Status.ACTIVE
        self.published_at = timezone.now()
        self.save(update_fields=["status", "published_at", "updated_at"])

    def unpublish(self) -> None:
        if self.status != self.Status.ACTIVE:
            raise ListingStateError("Only active listings can be unpublished.")
        self.status = self.Status.INACTIVE
        self.save(update_fields=["status", "updated_at"])

    def refresh_rating(self) -> None:
        """Recompute the denormalized review aggregate."""
        stats = self.reviews.filter(is_visible=True).aggregate(avg=Avg("rating"), total=Count("id"))
        average = stats["avg"]
        self.rating_average = Decimal(str(average)).quantize(Decimal("0.01")) if average is not None else None
        self.review_count = stats["total"]
        self.save(update_fields=["rating_average", "review_count"])

    def save(self, *args, **kwargs):  # type: ignore
        if not self.slug:
            base_slug = slugify(f"{self.title} {self.city}")[:200] or "listing"
            candidate = base_slug
            counter = 1
            while type(self).objects.filter(slug=candidate).exclude(pk=self.pk).exists():
                counter += 1
                candidate = f"{base_slug}-{counter}"
            self.slug = candidate
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "slug"}
        super().save(*args, **kwargs)


class ListingPhoto(models.Model):
    listing = models.ForeignKey(Listing, on_delete=models.CASCADE, related_name="photos")
    image = models.ImageField(upload_to="listings/photos/")
    caption = models.CharField(max_length=255, blank=True)
    order = models.PositiveIntegerField(default=0)
    is_primary = models.BooleanField(default=False)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Listing photo")
        verbose_name_plural = _("Listing photos")
        ordering = ["order", "id"]

    def __str__(self) -> str:
        return f"{self.listing.title} [{self.order}]"


class ListingAvailability(models.Model):
    """Calendar block ``[start_date, end_date)`` on a listing."""

    class Status(models.TextChoices):
        BOOKED = "booked", _("Booked")
        BLOCKED = "blocked", _("Blocked by owner")
        MAINTENANCE = "maintenance", _("Maintenance")

    class Source(models.TextChoices):
        BOOKING = "booking", _("Booking")
        MANUAL = "manual", _("Manual")

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name="availability_periods",
    )
    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="reserved_period",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.BLOCKED)
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.MANUAL)
    reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_availability_periods",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Availability period")
        verbose_name_plural = _("Availability periods")
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gt=models.F("start_date")),
                name="availability_valid_date_range",
            ),
        ]
        indexes = [
            models.Index(fields=["listing", "start_date", "end_date"]),
        ]

    def __str__(self) -> str:
        return f"{self.listing.title}: {self.start_date} - {self.end_date} ({self.status})"


class ListingAccessInfo(models.Model):
    """Encrypted gate and slip lock codes for a listing.

    Every read of a code is recorded in ``ListingAccessLog``.
    """

    ENCRYPTED_FIELDS = ("gate_code", "slip_lock_code")

    listing = models.OneToOneField(
        Listing,
        on_delete=models.CASCADE,
        related_name="access_info",
    )
    gate_code = EncryptedCharField(max_length=50, blank=True)
    slip_lock_code = EncryptedCharField(max_length=50, blank=True)
    instructions = models.TextField(blank=True)
    emergency_phone = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Listing access info")
        verbose_name_plural = _("Listing access info")

    def __str__(self) -> str:
        return f"Access for {self.listing.title}"

    def log_access(self, accessed_by, reason: str = "", ip_address: str | None = None) -> list["ListingAccessLog"]:
        """Record one log row per non-empty code that was revealed."""
        return ListingAccessLog.objects.bulk_create(
            [
                ListingAccessLog(
                    access_info=self,
                    accessed_by=accessed_by,
                    field_name=field_name,
                    reason=reason,
                    ip_address=ip_address,
                )
                for field_name in self.ENCRYPTED_FIELDS
                if getattr(self, field_name)
            ]
        )


class ListingAccessLog(models.Model):
    """Audit trail of who read which access code."""

    access_info = models.ForeignKey(
        ListingAccessInfo,
        on_delete=models.CASCADE,
        related_name="access_logs",
    )
    accessed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="access_logs",
    )
    field_name = models.CharField(max_length=50)
    reason = models.CharField(max_length=255, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    accessed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Access code log")
        verbose_name_plural = _("Access code logs")
        ordering = ["-accessed_at"]
        indexes = [
            models.Index(fields=["access_info", "-accessed_at"]),
            models.Index(fields=["accessed_by", "-accessed_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.accessed_by} -> {self.field_name} @ {self.accessed_at}"
