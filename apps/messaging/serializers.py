"""Serializers for conversations and messages."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.models import Booking
from apps.listings.models import Listing
from apps.users.models import User
from apps.users.serializers import PublicUserSerializer
from shared.infrastructure.lookups import ShortIdRelatedField

from .models import MAX_MESSAGE_LENGTH, Conversation, Message


class MessageSerializer(serializers.ModelSerializer):
    sender = serializers.ReadOnlyField(source="sender.short_id")
    body = serializers.CharField(max_length=MAX_MESSAGE_LENGTH)

    class Meta:
        model = Message
        fields = ["id", "short_id", "sender", "body", "is_read", "read_at", "sent_at"]
        read_only_fields = ["id", "short_id", "sender", "is_read", "read_at", "sent_at"]


class ConversationSerializer(serializers.ModelSerializer):
    """A conversation as seen by the requesting participant."""

    other_user = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    listing = serializers.SerializerMethodField()
    booking = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "short_id",
            "other_user",
            "listing",
            "booking",
            "last_message_at",
            "last_message_preview",
            "unread_count",
            "created_at",
        ]
        read_only_fields = fields

    def _user(self):
        return self.context["request"].user

    def get_other_user(self, obj: Conversation):
        other = obj.get_other_user(self._user())
        return PublicUserSerializer(other, context=self.context).data if other else None

    def get_unread_count(self, obj: Conversation) -> int:
        return obj.get_unread_count(self._user())

    def get_listing(self, obj: Conversation):
        if obj.listing is None:
            return None
        return {"id": str(obj.listing.pk), "short_id": obj.listing.short_id, "title": obj.listing.title}

    def get_booking(self, obj: Conversation):
        return obj.booking.short_id if obj.booking else None


class ConversationStartSerializer(serializers.Serializer):
    """Payload for opening (or reusing) a conversation with a first message."""

    recipient = ShortIdRelatedField(queryset=User.objects.filter(is_active=True))
    listing = ShortIdRelatedField(queryset=Listing.objects.select_related("owner"), required=False, allow_null=True)
    booking = ShortIdRelatedField(
        queryset=Booking.objects.select_related("listing", "listing__owner"),
        required=False,
        allow_null=True,
    )
    body = serializers.CharField(max_length=MAX_MESSAGE_LENGTH)

    def validate_recipient(self, recipient: User) -> User:
        if recipient.pk == self.context["request"].user.pk:
            raise serializers.ValidationError("You cannot message yourself.")
        return recipient

    def validate(self, attrs):  # type: ignore
        sender = self.context["request"].user
        recipient = attrs["recipient"]
        listing = attrs.get("listing")
        booking = attrs.get("booking")
        pair = {sender.pk, recipient.pk}

        if booking is not None:
            if {booking.renter_id, booking.listing.owner_id} != pair:
                raise serializers.ValidationError(
                    {"booking": ["Booking conversations are between the renter and the listing owner."]}
                )
            if listing is not None and listing.pk != booking.listing_id:
                raise serializers.ValidationError({"listing": ["Listing does not match the booking."]})
            attrs["listing"] = booking.listing
        elif listing is not None and listing.owner_id not in pair:
            raise serializers.ValidationError(
                {"listing": ["Conversations about a listing must include its owner."]}
            )
        return attrs
