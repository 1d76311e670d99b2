"""Payment API views and the Stripe webhook."""

from __future__ import annotations

import structlog
from django.utils.decorators import method_decorator  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from rest_framework import mixins, permissions, serializers, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.exceptions import PermissionDenied  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.users.permissions import is_platform_admin
from shared.infrastructure.exceptions import ConflictError, PaymentProviderError
from shared.infrastructure.lookups import ShortIdLookupMixin

from . import stripe_service
from .models import Payment
from .serializers import PaymentIntentRequestSerializer, PaymentIntentSerializer, PaymentSerializer
from .services import PaymentError, get_or_create_payment_intent, handle_event

logger = structlog.get_logger(__name__)


class PaymentViewSet(ShortIdLookupMixin, mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Renters see their own payments; admins see all of them."""

    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):  # type: ignore
        qs = Payment.objects.select_related("booking")
        if is_platform_admin(self.request.user):
            return qs
        return qs.filter(booking__renter=self.request.user)

    @action(detail=False, methods=["post"])
    def intent(self, request):  # type: ignore
        request_serializer = PaymentIntentRequestSerializer(data=request.data)
        request_serializer.is_valid(raise_exception=True)
        booking = request_serializer.validated_data["booking"]
        if booking.renter_id != request.user.id:
            raise PermissionDenied("Only the renter can pay for this booking.")

        try:
            payment, created = get_or_create_payment_intent(booking)
        except PaymentError as exc:
            raise ConflictError(str(exc))
        except stripe_service.StripeError as exc:
            raise PaymentProviderError(str(exc))

        return Response(
            PaymentIntentSerializer(payment).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


@method_decorator(csrf_exempt, name="dispatch")
class StripeWebhookView(APIView):
    """Receives Stripe events; authenticity comes from the signature."""

    authentication_classes: list = []
    permission_classes = [permissions.AllowAny]
    throttle_classes: list = []

    def post(self, request, *args, **kwargs):  # type: ignore
        signature = request.META.get("HTTP_STRIPE_SIGNATURE", "")
        try:
            event = stripe_service.verify_webhook_signature(request.body, signature)
        except stripe_service.WebhookSignatureError as exc:
            logger.warning("payment.webhook_rejected", error=str(exc))
            raise serializers.ValidationError({"signature": [str(exc)]})

        try:
            record = handle_event(event)
        except ValueError as exc:
            raise serializers.ValidationError({"event": [str(exc)]})
        except stripe_service.StripeError as exc:
            # Stripe retries non-2xx deliveries.
            raise PaymentProviderError(str(exc))

        return Response({"received": True, "event": record.stripe_event_id})
