"""URL routing for listings and amenities."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import SimpleRouter  # type: ignore

from .views import AmenityViewSet, ListingViewSet

router = SimpleRouter()
# Registered before the empty prefix so "amenities" is not read as a listing id.
router.register(r"amenities", AmenityViewSet, basename="amenity")
router.register(r"", ListingViewSet, basename="listing")

urlpatterns = [
    path("", include(router.urls)),
]
