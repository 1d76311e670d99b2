"""Serializers for the listings domain."""

from __future__ import annotations

from django.conf import settings  # type: ignore
from rest_framework import serializers  # type: ignore

from shared.domain.value_objects import SUPPORTED_CURRENCIES
from .models import (
    Amenity,
    Listing,
    ListingAccessInfo,
    ListingAvailability,
    ListingNotReadyError,
    ListingPhoto,
)


class AmenitySerializer(serializers.ModelSerializer):
    class Meta:
        model = Amenity
        fields = ["id", "name", "category", "icon"]


class ListingPhotoSerializer(serializers.ModelSerializer):
    class Meta:
        model = ListingPhoto
        fields = ["id", "image", "caption", "order", "is_primary", "uploaded_at"]
        read_only_fields = ["uploaded_at"]


class ListingOwnerSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    short_id = serializers.CharField(read_only=True)
    display_name = serializers.CharField(read_only=True)


class ListingSerializer(serializers.ModelSerializer):
    """Read serializer with nested relations."""

    owner = ListingOwnerSerializer(read_only=True)
    amenities = AmenitySerializer(many=True, read_only=True)
    photos = ListingPhotoSerializer(many=True, read_only=True)
    distance_miles = serializers.SerializerMethodField()

    class Meta:
        model = Listing
        fields = [
            "id",
            "short_id",
            "slug",
            "owner",
            "title",
            "description",
            "slip_type",
            "status",
            "address",
            "city",
            "state",
            "postal_code",
            "country",
            "latitude",
            "longitude",
            "max_boat_length_ft",
            "max_beam_ft",
            "max_draft_ft",
            "water_depth_ft",
            "nightly_rate",
            "cleaning_fee",
            "currency",
            "min_nights",
            "max_nights",
            "cancellation_policy",
            "instant_book",
            "amenities",
            "photos",
            "rules",
            "rating_average",
            "review_count",
            "distance_miles",
            "published_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_distance_miles(self, obj: Listing) -> float | None:
        return getattr(obj, "distance_miles", None)


class ListingWriteSerializer(serializers.ModelSerializer):
    """Serializer for create/update operations."""

    amenities = serializers.PrimaryKeyRelatedField(
        many=True,
        queryset=Amenity.objects.all(),
        required=False,
    )

    class Meta:
        model = Listing
        fields = [
            "title",
            "description",
            "slip_type",
            "address",
            "city",
            "state",
            "postal_code",
            "country",
            "latitude",
            "longitude",
            "max_boat_length_ft",
            "max_beam_ft",
            "max_draft_ft",
            "water_depth_ft",
            "nightly_rate",
            "cleaning_fee",
            "currency",
            "min_nights",
            "max_nights",
            "cancellation_policy",
            "instant_book",
            "amenities",
            "rules",
        ]

    def validate_currency(self, value: str) -> str:
        value = value.upper()
        if value not in SUPPORTED_CURRENCIES:
            raise serializers.ValidationError(f"Supported currencies: {', '.join(SUPPORTED_CURRENCIES)}.")
        return value

    def validate(self, attrs):  # type: ignore
        min_nights = attrs.get("min_nights", getattr(self.instance, "min_nights", 1))
        max_nights = attrs.get("max_nights", getattr(self.instance, "max_nights", 30))
        if min_nights > max_nights:
            raise serializers.ValidationError({"max_nights": "max_nights must be at least min_nights."})
        if max_nights > settings.DOKKERR["MAX_BOOKING_NIGHTS"]:
            raise serializers.ValidationError(
                {"max_nights": f"max_nights cannot exceed {settings.DOKKERR['MAX_BOOKING_NIGHTS']}."}
            )
        has_lat = "latitude" in attrs and attrs["latitude"] is not None
        has_lng = "longitude" in attrs and attrs["longitude"] is not None
        if has_lat != has_lng and self.instance is None:
            raise serializers.ValidationError("Provide both latitude and longitude, or neither.")
        if self.instance is not None and self.instance.is_active:
            # Edits must keep a live listing bookable.
            try:
                Listing.check_bookable(
                    attrs.get("latitude", self.instance.latitude),
                    attrs.get("longitude", self.instance.longitude),
                    attrs.get("nightly_rate", self.instance.nightly_rate),
                )
            except ListingNotReadyError as exc:
                raise serializers.ValidationError(str(exc))
        return attrs

    def create(self, validated_data):  # type: ignore
        amenities = validated_data.pop("amenities", [])
        listing = Listing.objects.create(owner=self.context["request"].user, **validated_data)
        if amenities:
            listing.amenities.set(amenities)
        return listing

    def update(self, instance: Listing, validated_data):  # type: ignore
        amenities = validated_data.pop("amenities", None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()
        if amenities is not None:
            instance.amenities.set(amenities)
        return instance


class ListingAvailabilitySerializer(serializers.ModelSerializer):
    created_by = serializers.ReadOnlyField(source="created_by_id")
    booking = serializers.SerializerMethodField()

    class Meta:
        model = ListingAvailability
        fields = [
            "id",
            "start_date",
            "end_date",
            "status",
            "source",
            "reason",
            "booking",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields

    def get_booking(self, obj: ListingAvailability) -> str | None:
        return obj.booking.short_id if obj.booking_id else None


class ListingAvailabilityWriteSerializer(serializers.ModelSerializer):
    status = serializers.ChoiceField(
        choices=[
            ListingAvailability.Status.BLOCKED,
            ListingAvailability.Status.MAINTENANCE,
        ],
        default=ListingAvailability.Status.BLOCKED,
    )

    class Meta:
        model = ListingAvailability
        fields = ["start_date", "end_date", "status", "reason"]

    def validate(self, attrs):  # type: ignore
        if attrs["end_date"] <= attrs["start_date"]:
            raise serializers.ValidationError({"end_date": "end_date must be after start_date."})
        return attrs


class ListingAccessInfoSerializer(serializers.ModelSerializer):
    """Decrypted access codes. Only use behind an access check."""

    class Meta:
        model = ListingAccessInfo
        fields = [
            "gate_code",
            "slip_lock_code",
            "instructions",
            "emergency_phone",
            "updated_at",
        ]
        read_only_fields = ["updated_at"]


class StayQuerySerializer(serializers.Serializer):
    check_in = serializers.DateField()
    check_out = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["check_out"] <= attrs["check_in"]:
            raise serializers.ValidationError({"check_out": "check_out must be after check_in."})
        return attrs


class CalendarQuerySerializer(serializers.Serializer):
    start = serializers.DateField(required=False)
    end = serializers.DateField(required=False)

    def validate(self, attrs):  # type: ignore
        start, end = attrs.get("start"), attrs.get("end")
        if start and end:
            if end <= start:
                raise serializers.ValidationError({"end": "end must be after start."})
            max_days = settings.DOKKERR["CALENDAR_MAX_DAYS"]
            if (end - start).days > max_days:
                raise serializers.ValidationError({"end": f"The calendar covers at most {max_days} days."})
        return attrs


class GeoQuerySerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
    radius = serializers.FloatField(min_value=0.1, max_value=500, default=25)
