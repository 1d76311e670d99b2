"""Filters for the notification feed."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import Notification


class NotificationFilter(django_filters.FilterSet):
    unread = django_filters.BooleanFilter(method='filter_unread')
    since = django_filters.IsoDateTimeFilter(field_name='created_at', lookup_expr='gt')
    event = django_filters.ChoiceFilter(choices=Notification.Event.choices)

    class Meta:
        model = Notification
        fields = ['unread', 'since', 'event']

    def filter_unread(self, queryset, name, value):  # type: ignore
        if value is None:
            return queryset
        return queryset.filter(is_read=not value)
