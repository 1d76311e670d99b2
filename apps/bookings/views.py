"""API views for the booking domain."""

from __future__ import annotations

import django_filters  # type: ignore
from django.http import Http404  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.users.permissions import is_platform_admin
from apps.payments.stripe_service import StripeError
from shared.infrastructure.exceptions import ConflictError, PaymentProviderError
from shared.infrastructure.lookups import ShortIdLookupMixin, identifier_filter

from .models import Booking
from .serializers import BookingCancelSerializer, BookingCreateSerializer, BookingSerializer
from .services import (
    InvalidTransitionError,
    cancel_booking,
    complete_booking,
    confirm_booking,
    start_booking,
)


class IsBookingStakeholder(permissions.BasePermission):
    """Renter, listing owner and platform admins may see a booking."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if is_platform_admin(user):
            return True
        return obj.is_stakeholder(user)


class BookingFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Booking.Status.choices)
    listing = django_filters.CharFilter(method="filter_listing")

    class Meta:
        model = Booking
        fields = ["status", "listing"]

    def filter_listing(self, queryset, name, value):  # type: ignore
        try:
            lookup = identifier_filter(value)
        except Http404:
            return queryset.none()
        return queryset.filter(**{f"listing__{key}": item for key, item in lookup.items()})


class BookingViewSet(
    ShortIdLookupMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create bookings and drive them through their lifecycle."""

    queryset = Booking.objects.select_related("listing", "renter", "listing__owner")
    permission_classes = [permissions.IsAuthenticated, IsBookingStakeholder]
    filterset_class = BookingFilter

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return BookingCreateSerializer
        if self.action == "cancel":
            return BookingCancelSerializer
        return BookingSerializer

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if self.action != "list":
            # Object permissions decide; 403 for outsiders, 404 only for missing ids.
            return qs
        if self.request.query_params.get("role") == "owner":
            return qs.filter(listing__owner=user)
        if is_platform_admin(user):
            return qs
        return qs.filter(renter=user)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = serializer.save()
        read_serializer = BookingSerializer(booking, context=self.get_serializer_context())
        headers = self.get_success_headers(read_serializer.data)
        return Response(read_serializer.data, status=status.HTTP_201_CREATED, headers=headers)

    def _owner_action(self, handler) -> Response:
        booking: Booking = self.get_object()
        user = self.request.user
        if not (is_platform_admin(user) or booking.listing.owner_id == user.id):
            raise PermissionDenied("Only the listing owner can do this.")
        try:
            booking = handler(booking)
        except InvalidTransitionError as exc:
            raise ConflictError(str(exc))
        return Response(BookingSerializer(booking, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):  # type: ignore
        booking: Booking = self.get_object()
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = request.user
        if booking.listing.owner_id == user.id or (is_platform_admin(user) and booking.renter_id != user.id):
            source = Booking.CancellationSource.OWNER
        else:
            source = Booking.CancellationSource.RENTER

        try:
            booking = cancel_booking(booking, source=source, reason=serializer.validated_data["reason"])
        except InvalidTransitionError as exc:
            raise ConflictError(str(exc))
        except StripeError as exc:
            raise PaymentProviderError(str(exc))
        return Response(BookingSerializer(booking, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):  # type: ignore
        return self._owner_action(confirm_booking)

    @action(detail=True, methods=["post"], url_path="check-in")
    def check_in(self, request, pk=None):  # type: ignore
        return self._owner_action(start_booking)

    @action(detail=True, methods=["post"], url_path="check-out")
    def check_out(self, request, pk=None):  # type: ignore
        return self._owner_action(complete_booking)
