"""Serializers for reviews.

The author is taken from the request; the listing comes from the
reviewed booking.
"""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking
from apps.users.serializers import PublicUserSerializer
from shared.infrastructure.lookups import ShortIdRelatedField

from .models import Review, ReviewPhoto

RATING_FIELDS = ["rating", *Review.SUB_RATING_FIELDS]


class ReviewPhotoSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReviewPhoto
        fields = ["id", "image", "caption", "order", "uploaded_at"]
        read_only_fields = ["uploaded_at"]


class ReviewCreateSerializer(serializers.ModelSerializer):
    booking = ShortIdRelatedField(queryset=Booking.objects.select_related("listing"))

    class Meta:
        model = Review
        fields = ["booking", *RATING_FIELDS, "comment"]

    def validate_booking(self, booking: Booking) -> Booking:
        user = self.context["request"].user
        if booking.renter_id != user.id:
            raise serializers.ValidationError("You can only review your own bookings.")
        if booking.status != Booking.Status.COMPLETED:
            raise serializers.ValidationError("Reviews open once the stay is completed.")
        if Review.objects.filter(booking=booking).exists():
            raise serializers.ValidationError("This booking has already been reviewed.")
        return booking

    def create(self, validated_data):  # type: ignore
        booking = validated_data["booking"]
        return Review.objects.create(
            listing=booking.listing,
            author=self.context["request"].user,
            **validated_data,
        )


class ReviewSerializer(serializers.ModelSerializer):
    """Read serializer with the author's public profile."""

    booking = serializers.ReadOnlyField(source="booking.short_id")
    listing = serializers.ReadOnlyField(source="listing.short_id")
    listing_title = serializers.ReadOnlyField(source="listing.title")
    author = PublicUserSerializer(read_only=True)
    average_rating = serializers.ReadOnlyField()
    photos = ReviewPhotoSerializer(many=True, read_only=True)

    class Meta:
        model = Review
        fields = [
            "id",
            "short_id",
            "booking",
            "listing",
            "listing_title",
            "author",
            *RATING_FIELDS,
            "average_rating",
            "comment",
            "photos",
            "owner_response",
            "owner_response_at",
            "is_visible",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class OwnerResponseSerializer(serializers.Serializer):
    response = serializers.CharField(max_length=2000)
