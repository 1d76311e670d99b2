"""Listing API views."""

from __future__ import annotations

import uuid
from datetime import timedelta

import structlog
from django.conf import settings  # type: ignore
from django.db.models import F, ProtectedError, Q  # type: ignore
from django.shortcuts import get_object_or_404  # type: ignore
from django.utils import timezone  # type: ignore
from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import permissions, serializers, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied  # type: ignore
from rest_framework.filters import OrderingFilter  # type: ignore
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.bookings.models import Booking
from apps.bookings.services import is_listing_available, quote_booking
from apps.users.permissions import IsPlatformAdmin, is_platform_admin
from shared.domain.value_objects import DateRange
from shared.infrastructure.exceptions import ConflictError
from shared.infrastructure.lookups import ShortIdLookupMixin
from shared.infrastructure.storage import InvalidImageError

from .cache import get_cached_search
from .filters import ListingFilterSet
from .geo import bounding_box, rank_by_distance
from .models import (
    Amenity,
    Listing,
    ListingAccessInfo,
    ListingAvailability,
    ListingNotReadyError,
    ListingPhoto,
    ListingStateError,
)
from .permissions import IsListingOwnerOrAdmin
from .serializers import (
    AmenitySerializer,
    CalendarQuerySerializer,
    GeoQuerySerializer,
    ListingAccessInfoSerializer,
    ListingAvailabilitySerializer,
    ListingAvailabilityWriteSerializer,
    ListingPhotoSerializer,
    ListingSerializer,
    ListingWriteSerializer,
    StayQuerySerializer,
)

logger = structlog.get_logger(__name__)

GEO_PARAMS = ("lat", "lng")
WINDOW_PARAMS = ("check_in", "check_out")
UNCACHED_PARAMS = ("page",)


class ListingViewSet(ShortIdLookupMixin, viewsets.ModelViewSet):
    """Viewset for listing search and management."""

    queryset = Listing.objects.select_related("owner").prefetch_related("amenities", "photos")
    permission_classes = [IsListingOwnerOrAdmin]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ListingFilterSet
    ordering_fields = ["nightly_rate", "created_at", "rating", "published_at"]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get_permissions(self):  # type: ignore
        if self.action in {"list", "retrieve", "quote", "calendar"}:
            return [permissions.AllowAny()]
        if self.action in {"publish", "unpublish", "availability", "delete_availability", "photos"}:
            return [permissions.IsAuthenticated(), IsListingOwnerOrAdmin()]
        if self.action == "access_info":
            return [permissions.IsAuthenticated()]
        return super().get_permissions()

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset().annotate(rating=F("rating_average"))
        user = self.request.user
        if is_platform_admin(user):
            return qs
        if user.is_authenticated:
            return qs.filter(Q(status=Listing.Status.ACTIVE) | Q(owner=user))
        return qs.filter(status=Listing.Status.ACTIVE)

    def filter_queryset(self, queryset):  # type: ignore
        # Search params such as check_in also drive quote; only list filters.
        if self.action != "list":
            return queryset
        return super().filter_queryset(queryset)

    def get_serializer_class(self):  # type: ignore
        if self.action in {"create", "update", "partial_update"}:
            return ListingWriteSerializer
        return ListingSerializer

    # ---------- search ----------

    def list(self, request, *args, **kwargs):  # type: ignore
        params = request.query_params
        geo = None
        if any(name in params for name in GEO_PARAMS):
            geo_serializer = GeoQuerySerializer(data=params)
            geo_serializer.is_valid(raise_exception=True)
            geo = geo_serializer.validated_data

        has_window = all(params.get(name) for name in WINDOW_PARAMS)
        if geo is None and not has_window:
            return super().list(request, *args, **kwargs)

        def build():  # type: ignore
            queryset = self.filter_queryset(self.get_queryset())
            if geo is None:
                return [[str(pk), None] for pk in queryset.values_list("pk", flat=True)]
            box = bounding_box(geo["lat"], geo["lng"], geo["radius"])
            rows = queryset.filter(**box.as_filter()).values_list("pk", "latitude", "longitude")
            return [[str(pk), distance] for pk, distance in rank_by_distance(list(rows), geo["lat"], geo["lng"], geo["radius"])]

        if request.user.is_authenticated:
            # Owners see their own drafts; keep per-user results out of the shared cache.
            rows = build()
        else:
            cache_filters = {key: params.get(key) for key in params if key not in UNCACHED_PARAMS}
            rows = get_cached_search(cache_filters, build)

        listings = self._resolve_rows(rows)
        page = self.paginate_queryset(listings)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def _resolve_rows(self, rows) -> list[Listing]:  # type: ignore
        by_id = self.get_queryset().in_bulk([row[0] for row in rows])
        listings = []
        for pk, distance in rows:
            listing = by_id.get(uuid.UUID(str(pk)))
            if listing is None:
                continue
            listing.distance_miles = distance
            listings.append(listing)
        return listings

    # ---------- create / update ----------

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        listing = serializer.save()
        logger.info("listing.created", listing=listing.short_id, owner=str(request.user.pk))
        read_serializer = ListingSerializer(listing, context=self.get_serializer_context())
        headers = self.get_success_headers(read_serializer.data)
        return Response(read_serializer.data, status=status.HTTP_201_CREATED, headers=headers)

    def update(self, request, *args, **kwargs):  # type: ignore
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        listing = serializer.save()
        return Response(ListingSerializer(listing, context=self.get_serializer_context()).data)

    def perform_destroy(self, instance: Listing) -> None:  # type: ignore
        if instance.bookings.filter(status__in=Booking.LIVE_STATUSES).exists():
            raise ConflictError("The listing has upcoming bookings. Cancel them first.")
        try:
            instance.delete()
        except ProtectedError:
            raise ConflictError("The listing has booking history. Unpublish it instead.")
        logger.info("listing.deleted", listing=instance.short_id)

    # ---------- publishing ----------

    def _change_status(self, change) -> Response:  # type: ignore
        listing: Listing = self.get_object()
        try:
            change(listing)
        except ListingStateError as exc:
            raise ConflictError(str(exc))
        except ListingNotReadyError as exc:
            raise serializers.ValidationError({"non_field_errors": [str(exc)]})
        logger.info("listing.status_changed", listing=listing.short_id, status=listing.status)
        return Response(ListingSerializer(listing, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"])
    def publish(self, request, pk=None):  # type: ignore
        return self._change_status(Listing.publish)

    @action(detail=True, methods=["post"])
    def unpublish(self, request, pk=None):  # type: ignore
        return self._change_status(Listing.unpublish)

    # ---------- pricing & calendar ----------

    @action(detail=True, methods=["get"])
    def quote(self, request, pk=None):  # type: ignore
        listing: Listing = self.get_object()
        query = StayQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        check_in, check_out = query.validated_data["check_in"], query.validated_data["check_out"]

        data = quote_booking(listing, check_in, check_out).as_dict()
        data.update(
            listing=listing.short_id,
            check_in=check_in,
            check_out=check_out,
            available=listing.is_active and is_listing_available(listing, check_in, check_out),
        )
        return Response(data)

    @action(detail=True, methods=["get"])
    def calendar(self, request, pk=None):  # type: ignore
        """Per-night status for ``[start, end)``; defaults to the next 30 days."""
        listing: Listing = self.get_object()
        query = CalendarQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        start = query.validated_data.get("start") or timezone.localdate()
        end = query.validated_data.get("end") or start + timedelta(days=30)
        max_days = settings.DOKKERR["CALENDAR_MAX_DAYS"]
        if end <= start or (end - start).days > max_days:
            raise serializers.ValidationError({"end": f"end must be after start and within {max_days} days."})

        window = DateRange(start, end)
        night_status: dict = {}
        periods = ListingAvailability.objects.filter(listing=listing, start_date__lt=end, end_date__gt=start)
        for period in periods:
            for night in DateRange(period.start_date, period.end_date).dates():
                if window.contains(night):
                    night_status.setdefault(night, period.status)
        bookings = listing.bookings.filter(
            status__in=Booking.LIVE_STATUSES, check_in__lt=end, check_out__gt=start
        ).only("check_in", "check_out")
        for booking in bookings:
            for night in booking.stay.dates():
                if window.contains(night):
                    night_status[night] = ListingAvailability.Status.BOOKED

        days = [{"date": night, "status": night_status.get(night, "available")} for night in window.dates()]
        return Response({"listing": listing.short_id, "start": start, "end": end, "days": days})

    # ---------- owner calendar blocks ----------

    @action(detail=True, methods=["get", "post"])
    def availability(self, request, pk=None):  # type: ignore
        listing: Listing = self.get_object()
        if request.method == "GET":
            periods = listing.availability_periods.select_related("booking").order_by("start_date")
            return Response(ListingAvailabilitySerializer(periods, many=True).data)

        serializer = ListingAvailabilityWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        start_date = serializer.validated_data["start_date"]
        end_date = serializer.validated_data["end_date"]
        live_bookings = listing.bookings.filter(
            status__in=Booking.LIVE_STATUSES, check_in__lt=end_date, check_out__gt=start_date
        )
        if live_bookings.exists():
            raise serializers.ValidationError(
                {"non_field_errors": ["The selected dates overlap an existing booking."]}
            )
        overlapping = listing.availability_periods.filter(start_date__lt=end_date, end_date__gt=start_date)
        if overlapping.exists():
            raise serializers.ValidationError(
                {"non_field_errors": ["The selected dates overlap an existing calendar block."]}
            )
        period = serializer.save(
            listing=listing,
            source=ListingAvailability.Source.MANUAL,
            created_by=request.user,
        )
        return Response(ListingAvailabilitySerializer(period).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"availability/(?P<block_id>\d+)",
        url_name="availability-detail",
    )
    def delete_availability(self, request, pk=None, block_id=None):  # type: ignore
        listing: Listing = self.get_object()
        period = get_object_or_404(ListingAvailability, listing=listing, pk=block_id)
        if period.source == ListingAvailability.Source.BOOKING:
            raise serializers.ValidationError(
                {"non_field_errors": ["Booked dates are released by cancelling the booking."]}
            )
        period.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ---------- photos ----------

    @action(detail=True, methods=["post"])
    def photos(self, request, pk=None):  # type: ignore
        listing: Listing = self.get_object()
        serializer = ListingPhotoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            photo: ListingPhoto = serializer.save(listing=listing)
        except InvalidImageError as exc:
            raise serializers.ValidationError({"image": [str(exc)]})
        if photo.is_primary:
            listing.photos.exclude(pk=photo.pk).update(is_primary=False)
        return Response(ListingPhotoSerializer(photo).data, status=status.HTTP_201_CREATED)

    # ---------- access codes ----------

    def _access_reason(self, listing: Listing, user) -> str | None:  # type: ignore
        if listing.owner_id == user.id:
            return "Listing owner"
        if is_platform_admin(user):
            return "Platform admin"
        today = timezone.localdate()
        booking = Booking.objects.filter(
            listing=listing,
            renter=user,
            status__in=[Booking.Status.CONFIRMED, Booking.Status.ACTIVE],
            check_in__lte=today,
            check_out__gte=today,
        ).first()
        if booking is not None:
            return f"Booking #{booking.short_id}"
        return None

    @action(detail=True, methods=["get", "put"], url_path="access-info")
    def access_info(self, request, pk=None):  # type: ignore
        listing: Listing = self.get_object()
        user = request.user

        if request.method == "PUT":
            if not (listing.owner_id == user.id or is_platform_admin(user)):
                raise PermissionDenied("Only the listing owner can change access codes.")
            instance = ListingAccessInfo.objects.filter(listing=listing).first()
            serializer = ListingAccessInfoSerializer(instance, data=request.data)
            serializer.is_valid(raise_exception=True)
            serializer.save(listing=listing)
            logger.info("listing.access_info_updated", listing=listing.short_id, user=str(user.pk))
            return Response(serializer.data)

        reason = self._access_reason(listing, user)
        if reason is None:
            logger.warning("listing.access_info_denied", listing=listing.short_id, user=str(user.pk))
            raise PermissionDenied("You do not have access to the codes for this listing.")

        access_info, _ = ListingAccessInfo.objects.get_or_create(listing=listing)
        access_info.log_access(user, reason=reason, ip_address=_client_ip(request))
        return Response(ListingAccessInfoSerializer(access_info).data)


class AmenityViewSet(viewsets.ModelViewSet):
    """Amenities are public to read and managed by platform admins."""

    queryset = Amenity.objects.all()
    serializer_class = AmenitySerializer
    pagination_class = None

    def get_permissions(self):  # type: ignore
        if self.action in {"list", "retrieve"}:
            return [permissions.AllowAny()]
        return [IsPlatformAdmin()]


def _client_ip(request) -> str | None:  # type: ignore
    """Extract client IP from request."""
    forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")
