"""Models for the review domain.

A renter reviews a listing once per completed booking. The overall
rating feeds the denormalized ``rating_average`` on the listing; the
owner may answer each review once.
"""

from __future__ import annotations

from django.conf import settings  # type: ignore
from django.core.validators import MaxValueValidator, MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.infrastructure.models import ShortIdModel

RATING_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]
MAX_REVIEW_PHOTOS = 5


def _sub_rating(help_text: str) -> models.PositiveSmallIntegerField:
    return models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=RATING_VALIDATORS,
        help_text=help_text,
    )


class Review(ShortIdModel):
    """Feedback left by a renter after a completed stay."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="review",
    )
    listing = models.ForeignKey(
        "listings.Listing",
        on_delete=models.CASCADE,
        related_name="reviews",
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reviews",
    )
    rating = models.PositiveSmallIntegerField(validators=RATING_VALIDATORS)
    location_rating = _sub_rating(_("Location"))
    facilities_rating = _sub_rating(_("Facilities"))
    value_rating = _sub_rating(_("Value for money"))
    communication_rating = _sub_rating(_("Communication with the owner"))
    accuracy_rating = _sub_rating(_("Accuracy of the listing"))
    comment = models.TextField(blank=True)

    owner_response = models.TextField(blank=True)
    owner_response_at = models.DateTimeField(null=True, blank=True)

    is_visible = models.BooleanField(default=True, help_text=_("Hidden reviews do not count toward the rating."))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    SUB_RATING_FIELDS = (
        "location_rating",
        "facilities_rating",
        "value_rating",
        "communication_rating",
        "accuracy_rating",
    )

    class Meta:
        verbose_name = _("Review")
        verbose_name_plural = _("Reviews")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["listing", "-created_at"]),
            models.Index(fields=["author"]),
        ]

    def __str__(self) -> str:
        return f"Review #{self.short_id} for {self.listing_id} ({self.rating})"

    @property
    def average_rating(self) -> float:
        """Mean of the overall rating and every sub-rating given."""
        ratings = [self.rating, *(getattr(self, name) for name in self.SUB_RATING_FIELDS)]
        given = [value for value in ratings if value is not None]
        return round(sum(given) / len(given), 2)

    @property
    def has_response(self) -> bool:
        return bool(self.owner_response_at)

    def respond(self, text: str) -> None:
        self.owner_response = text
        self.owner_response_at = timezone.now()
        self.save(update_fields=["owner_response", "owner_response_at", "updated_at"])


class ReviewPhoto(models.Model):
    """Photo attached to a review, up to ``MAX_REVIEW_PHOTOS`` each."""

    review = models.ForeignKey(Review, on_delete=models.CASCADE, related_name="photos")
    image = models.ImageField(upload_to="reviews/photos/%Y/%m/%d/")
    caption = models.CharField(max_length=255, blank=True)
    order = models.PositiveSmallIntegerField(default=0)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Review photo")
        verbose_name_plural = _("Review photos")
        ordering = ["order", "id"]

    def __str__(self) -> str:
        return f"Photo for review {self.review_id} (order {self.order})"
