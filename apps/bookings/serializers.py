"""Serializers for the booking domain."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers  # type: ignore

from apps.listings.models import Listing
from apps.users.serializers import PublicUserSerializer
from shared.infrastructure.lookups import ShortIdRelatedField

from .models import Booking
from .services import BookingConflictError, create_booking, validate_booking_request


class BookingCreateSerializer(serializers.Serializer):
    """Booking request from a renter."""

    listing = ShortIdRelatedField(queryset=Listing.objects.all())
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    boat_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    boat_length_ft = serializers.DecimalField(max_digits=5, decimal_places=1, min_value=Decimal("1"))
    guests = serializers.IntegerField(min_value=1, max_value=50, default=1)
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):  # type: ignore
        errors = validate_booking_request(
            self.context["request"].user,
            attrs["listing"],
            attrs["check_in"],
            attrs["check_out"],
            attrs["boat_length_ft"],
        )
        if errors:
            raise serializers.ValidationError({"non_field_errors": errors})
        return attrs

    def create(self, validated_data):  # type: ignore
        data = dict(validated_data)
        listing = data.pop("listing")
        check_in = data.pop("check_in")
        check_out = data.pop("check_out")
        try:
            return create_booking(self.context["request"].user, listing, check_in, check_out, **data)
        except BookingConflictError as exc:
            raise serializers.ValidationError({"non_field_errors": [str(exc)]})


class BookingListingSerializer(serializers.ModelSerializer):
    class Meta:
        model = Listing
        fields = ["id", "short_id", "title", "city", "state", "slip_type", "cancellation_policy"]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Full booking, as seen by its renter, the listing owner or an admin."""

    listing = BookingListingSerializer(read_only=True)
    renter = PublicUserSerializer(read_only=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "short_id",
            "listing",
            "renter",
            "check_in",
            "check_out",
            "nights",
            "boat_name",
            "boat_length_ft",
            "guests",
            "status",
            "payment_status",
            "nightly_rate",
            "subtotal",
            "cleaning_fee",
            "service_fee",
            "total_price",
            "currency",
            "special_requests",
            "expires_at",
            "confirmed_at",
            "started_at",
            "completed_at",
            "cancelled_at",
            "cancellation_source",
            "cancellation_reason",
            "refund_amount",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
