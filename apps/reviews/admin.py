from django.contrib import admin  # type: ignore

from .models import Review, ReviewPhoto


class ReviewPhotoInline(admin.TabularInline):
    model = ReviewPhoto
    extra = 0


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("short_id", "listing", "author", "rating", "is_visible", "created_at")
    list_filter = ("is_visible", "rating")
    list_editable = ("is_visible",)
    search_fields = ("short_id", "comment", "author__email", "listing__title")
    raw_id_fields = ("booking", "listing", "author")
    inlines = [ReviewPhotoInline]
