"""API views for managing reviews."""

from __future__ import annotations

import django_filters  # type: ignore
from django.http import Http404  # type: ignore
from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied, ValidationError  # type: ignore
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.users.permissions import is_platform_admin
from shared.infrastructure.exceptions import ConflictError
from shared.infrastructure.lookups import ShortIdLookupMixin, identifier_filter
from shared.infrastructure.storage import InvalidImageError

from .models import MAX_REVIEW_PHOTOS, Review
from .serializers import (
    OwnerResponseSerializer,
    ReviewCreateSerializer,
    ReviewPhotoSerializer,
    ReviewSerializer,
)


class ReviewFilter(django_filters.FilterSet):
    listing = django_filters.CharFilter(method="filter_related")
    author = django_filters.CharFilter(method="filter_related")
    rating = django_filters.NumberFilter(field_name="rating", lookup_expr="gte")

    class Meta:
        model = Review
        fields = ["listing", "author", "rating"]

    def filter_related(self, queryset, name, value):  # type: ignore
        try:
            lookup = identifier_filter(value)
        except Http404:
            return queryset.none()
        return queryset.filter(**{f"{name}__{key}": item for key, item in lookup.items()})


class ReviewViewSet(
    ShortIdLookupMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Public reviews; renters write them, listing owners answer them."""

    queryset = Review.objects.select_related("listing", "author", "booking").prefetch_related("photos")
    permission_classes = [permissions.IsAuthenticatedOrReadOnly]
    filterset_class = ReviewFilter
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return ReviewCreateSerializer
        if self.action == "respond":
            return OwnerResponseSerializer
        return ReviewSerializer

    def get_queryset(self):  # type: ignore
        qs = super().get_queryset()
        if is_platform_admin(self.request.user):
            return qs
        return qs.filter(is_visible=True)

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = serializer.save()
        return Response(ReviewSerializer(review, context=self.get_serializer_context()).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAuthenticated])
    def respond(self, request, pk=None):  # type: ignore
        review: Review = self.get_object()
        if review.listing.owner_id != request.user.id:
            raise PermissionDenied("Only the listing owner can respond to reviews.")
        if review.has_response:
            raise ConflictError("This review already has a response.")

        serializer = OwnerResponseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review.respond(serializer.validated_data["response"])
        return Response(ReviewSerializer(review, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"], permission_classes=[permissions.IsAuthenticated])
    def photos(self, request, pk=None):  # type: ignore
        review: Review = self.get_object()
        if review.author_id != request.user.id:
            raise PermissionDenied("Only the author can add photos.")
        if review.photos.count() >= MAX_REVIEW_PHOTOS:
            raise ValidationError({"image": [f"A review can have at most {MAX_REVIEW_PHOTOS} photos."]})

        serializer = ReviewPhotoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            photo = serializer.save(review=review)
        except InvalidImageError as exc:
            raise ValidationError({"image": [str(exc)]})
        return Response(ReviewPhotoSerializer(photo).data, status=status.HTTP_201_CREATED)
