"""API views for in-app messaging."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from shared.infrastructure.lookups import ShortIdLookupMixin

from .models import Conversation
from .serializers import ConversationSerializer, ConversationStartSerializer, MessageSerializer
from .services import conversations_for, send_message, start_conversation


class ConversationViewSet(
    ShortIdLookupMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Conversations of the authenticated user.

    Conversations the user is not part of are indistinguishable from
    missing ones.
    """

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ConversationSerializer

    def get_queryset(self):  # type: ignore
        return conversations_for(self.request.user)

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return ConversationStartSerializer
        if self.action == "messages":
            return MessageSerializer
        return ConversationSerializer

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = ConversationStartSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        conversation, created = start_conversation(
            request.user,
            data["recipient"],
            data["body"],
            listing=data.get("listing"),
            booking=data.get("booking"),
        )
        return Response(
            ConversationSerializer(conversation, context=self.get_serializer_context()).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):  # type: ignore
        conversation: Conversation = self.get_object()
        if request.method == "POST":
            serializer = MessageSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            message = send_message(conversation, request.user, serializer.validated_data["body"])
            return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)

        queryset = conversation.messages.select_related("sender")
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(MessageSerializer(page, many=True).data)
        return Response(MessageSerializer(queryset, many=True).data)

    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):  # type: ignore
        conversation: Conversation = self.get_object()
        marked = conversation.mark_as_read(request.user)
        return Response({"conversation": conversation.short_id, "marked_read": marked, "unread_count": 0})
