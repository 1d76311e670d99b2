from django.contrib import admin  # type: ignore

from .models import (
    Amenity,
    Listing,
    ListingAccessInfo,
    ListingAccessLog,
    ListingAvailability,
    ListingPhoto,
)


class ListingPhotoInline(admin.TabularInline):
    model = ListingPhoto
    extra = 0


class ListingAvailabilityInline(admin.TabularInline):
    model = ListingAvailability
    extra = 0
    fields = ("start_date", "end_date", "status", "source", "reason", "booking")
    raw_id_fields = ("booking",)


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    list_display = ("short_id", "title", "owner", "city", "state", "slip_type", "status", "nightly_rate")
    list_filter = ("status", "slip_type", "state", "instant_book", "cancellation_policy")
    search_fields = ("title", "city", "short_id", "owner__email")
    readonly_fields = ("short_id", "slug", "rating_average", "review_count", "published_at")
    raw_id_fields = ("owner",)
    filter_horizontal = ("amenities",)
    inlines = [ListingPhotoInline, ListingAvailabilityInline]


@admin.register(Amenity)
class AmenityAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "icon")
    list_filter = ("category",)
    search_fields = ("name",)


@admin.register(ListingAccessInfo)
class ListingAccessInfoAdmin(admin.ModelAdmin):
    """Codes stay encrypted at rest; the admin only shows metadata."""

    list_display = ("listing", "updated_at")
    exclude = ("gate_code", "slip_lock_code")
    raw_id_fields = ("listing",)


@admin.register(ListingAccessLog)
class ListingAccessLogAdmin(admin.ModelAdmin):
    list_display = ("access_info", "accessed_by", "field_name", "reason", "ip_address", "accessed_at")
    list_filter = ("field_name",)
    readonly_fields = [field.name for field in ListingAccessLog._meta.fields]
