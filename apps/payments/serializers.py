"""Serializers for payments."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking
from shared.infrastructure.lookups import ShortIdRelatedField

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    booking = serializers.ReadOnlyField(source="booking.short_id")

    class Meta:
        model = Payment
        fields = [
            "id",
            "short_id",
            "booking",
            "stripe_payment_intent_id",
            "amount",
            "currency",
            "status",
            "refunded_amount",
            "failure_reason",
            "succeeded_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentIntentSerializer(PaymentSerializer):
    """Adds the secret the browser needs to confirm the intent."""

    class Meta(PaymentSerializer.Meta):
        fields = PaymentSerializer.Meta.fields + ["client_secret"]
        read_only_fields = fields


class PaymentIntentRequestSerializer(serializers.Serializer):
    booking = ShortIdRelatedField(queryset=Booking.objects.select_related("renter", "listing"))
