"""FilterSet definitions for listing search."""

from __future__ import annotations

import django_filters  # type: ignore
from django.db.models import Count, Q  # type: ignore
from django.http import Http404  # type: ignore
from rest_framework import serializers  # type: ignore

from shared.infrastructure.lookups import identifier_filter
from .models import Listing, ListingAvailability


def unavailable_listing_ids(check_in, check_out):  # type: ignore
    """Listing ids with a live booking or a calendar block overlapping the window."""
    from apps.bookings.models import Booking

    blocked = ListingAvailability.objects.filter(
        start_date__lt=check_out,
        end_date__gt=check_in,
    ).values_list("listing_id", flat=True)
    booked = Booking.objects.filter(
        check_in__lt=check_out,
        check_out__gt=check_in,
        status__in=Booking.LIVE_STATUSES,
    ).values_list("listing_id", flat=True)
    return set(blocked) | set(booked)


class ListingFilterSet(django_filters.FilterSet):
    """Filters used by the public listing search."""

    city = django_filters.CharFilter(field_name="city", lookup_expr="iexact")
    state = django_filters.CharFilter(field_name="state", lookup_expr="iexact")
    slip_type = django_filters.ChoiceFilter(choices=Listing.SlipType.choices)
    price_min = django_filters.NumberFilter(field_name="nightly_rate", lookup_expr="gte")
    price_max = django_filters.NumberFilter(field_name="nightly_rate", lookup_expr="lte")
    boat_length = django_filters.NumberFilter(field_name="max_boat_length_ft", lookup_expr="gte")
    beam = django_filters.NumberFilter(method="filter_beam")
    draft = django_filters.NumberFilter(method="filter_draft")
    instant_book = django_filters.BooleanFilter(field_name="instant_book")
    owner = django_filters.CharFilter(method="filter_owner")
    status = django_filters.ChoiceFilter(choices=Listing.Status.choices)

    # CSV of amenity ids, requires all selected amenities
    amenities = django_filters.CharFilter(method="filter_amenities")

    check_in = django_filters.DateFilter(method="filter_available_window")
    check_out = django_filters.DateFilter(method="filter_available_window")

    class Meta:
        model = Listing
        fields = ["city", "state", "slip_type", "instant_book", "status"]

    def filter_beam(self, queryset, name, value):  # type: ignore
        return queryset.filter(Q(max_beam_ft__isnull=True) | Q(max_beam_ft__gte=value))

    def filter_draft(self, queryset, name, value):  # type: ignore
        return queryset.filter(Q(max_draft_ft__isnull=True) | Q(max_draft_ft__gte=value))

    def filter_owner(self, queryset, name, value):  # type: ignore
        try:
            lookup = identifier_filter(value)
        except Http404:
            return queryset.none()
        return queryset.filter(**{f"owner__{key}": item for key, item in lookup.items()})

    def filter_amenities(self, queryset, name, value):  # type: ignore
        try:
            ids = [int(x) for x in str(value).replace(" ", "").split(",") if x]
        except ValueError:
            raise serializers.ValidationError({"amenities": "Expected a comma separated list of ids."})
        if not ids:
            return queryset
        # Require all of the amenities: annotate count of matched amenities
        return queryset.annotate(
            matched_amenities=Count("amenities", filter=Q(amenities__id__in=ids), distinct=True)
        ).filter(matched_amenities=len(set(ids)))

    def filter_available_window(self, queryset, name, value):  # type: ignore
        # Both dates arrive separately; act once, on check_in.
        if name != "check_in":
            return queryset
        check_in = value
        check_out = self.form.cleaned_data.get("check_out")
        if check_out is None:
            raise serializers.ValidationError({"check_out": "check_out is required with check_in."})
        if check_out <= check_in:
            raise serializers.ValidationError({"check_out": "check_out must be after check_in."})
        return queryset.exclude(id__in=unavailable_listing_ids(check_in, check_out))
