"""Viewset helpers for resolving objects by UUID or short ID."""

from __future__ import annotations

import re
import uuid

from django.core.exceptions import ObjectDoesNotExist  # type: ignore
from django.http import Http404  # type: ignore
from django.shortcuts import get_object_or_404  # type: ignore
from rest_framework import serializers  # type: ignore

from .models import SHORT_ID_LENGTH

SHORT_ID_PATTERN = re.compile(rf"^[0-9a-f]{{{SHORT_ID_LENGTH}}}$")


def identifier_filter(value: str) -> dict[str, object]:
    """Return the ORM filter matching ``value`` as a UUID or short ID.

    Raises ``Http404`` for anything that is neither.
    """
    value = (value or "").strip().lower()
    if SHORT_ID_PATTERN.match(value):
        return {"short_id": value}
    try:
        return {"pk": uuid.UUID(value)}
    except ValueError:
        raise Http404("Not found.")


class ShortIdLookupMixin:
    """Lets ``{pk}`` in detail routes be a full UUID or an 8-char short ID."""

    lookup_value_regex = r"[0-9a-fA-F-]{8,36}"

    def get_object(self):  # type: ignore
        queryset = self.filter_queryset(self.get_queryset())
        lookup_url_kwarg = self.lookup_url_kwarg or self.lookup_field
        obj = get_object_or_404(queryset, **identifier_filter(self.kwargs[lookup_url_kwarg]))
        self.check_object_permissions(self.request, obj)
        return obj


class ShortIdRelatedField(serializers.RelatedField):
    """Writable relation that accepts a UUID or short ID and renders the UUID."""

    default_error_messages = {
        "does_not_exist": "Object with id '{value}' does not exist.",
        "invalid": "Expected a UUID or an 8-character short ID.",
    }

    def to_internal_value(self, data):  # type: ignore
        if not isinstance(data, str):
            data = str(data)
        try:
            lookup = identifier_filter(data)
        except Http404:
            self.fail("invalid")
        try:
            return self.get_queryset().get(**lookup)
        except ObjectDoesNotExist:
            self.fail("does_not_exist", value=data)

    def to_representation(self, value):  # type: ignore
        return str(value.pk)
