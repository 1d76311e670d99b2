"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin  # type: ignore

from .models import Booking


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "short_id",
        "listing",
        "renter",
        "status",
        "payment_status",
        "check_in",
        "check_out",
        "total_price",
        "created_at",
    )
    list_filter = ("status", "payment_status", "cancellation_source", "check_in")
    search_fields = ("short_id", "listing__title", "renter__email", "boat_name")
    raw_id_fields = ("listing", "renter")
    readonly_fields = (
        "short_id",
        "nightly_rate",
        "nights",
        "subtotal",
        "service_fee",
        "total_price",
        "refund_amount",
        "created_at",
        "updated_at",
    )
