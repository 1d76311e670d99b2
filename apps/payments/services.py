"""Payment workflows: intents, refunds and Stripe webhook events."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable

import structlog
from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.models import Booking
from apps.notifications.models import Notification
from apps.notifications.services import booking_payload, notify
from shared.domain.value_objects import Money

from . import stripe_service
from .models import Payment, PaymentEvent
from .stripe_service import StripeError

logger = structlog.get_logger(__name__)


class PaymentError(Exception):
    """The booking is not in a state that can be paid."""


# Stripe intent states in which the client can still complete the payment.
REUSABLE_INTENT_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "requires_action", "processing"}
)


# ============================================================================
# INTENTS & REFUNDS
# ============================================================================

def _sync_open_intent(payment: Payment) -> bool:
    """Refresh a stored intent from Stripe. Returns whether the client can keep using it."""
    intent = stripe_service.retrieve_payment_intent(payment.stripe_payment_intent_id)
    stripe_status = intent.get("status", "")
    if stripe_status == "succeeded":
        raise PaymentError("This booking is already paid and awaiting confirmation.")
    if stripe_status not in REUSABLE_INTENT_STATUSES:
        logger.info("payment.intent_replaced", payment=payment.short_id, stripe_status=stripe_status)
        return False

    payment.metadata = {**payment.metadata, "stripe_status": stripe_status}
    if stripe_status == "processing":
        payment.status = Payment.Status.PROCESSING
    payment.save(update_fields=["metadata", "status", "updated_at"])
    return True


def get_or_create_payment_intent(booking: Booking) -> tuple[Payment, bool]:
    """Return the open PaymentIntent for ``booking``, creating one if needed."""
    if booking.status != Booking.Status.PENDING or booking.payment_status == Booking.PaymentStatus.PAID:
        raise PaymentError("Only pending, unpaid bookings can be paid.")

    payment = Payment.objects.filter(booking=booking).first()
    if payment is not None:
        if payment.status in Payment.OPEN_STATUSES and payment.amount == booking.total_price:
            if _sync_open_intent(payment):
                return payment, False
        elif payment.status != Payment.Status.FAILED:
            raise PaymentError("This booking already has a payment.")

    money = Money(booking.total_price, booking.currency)
    intent = stripe_service.create_payment_intent(
        money.cents,
        booking.currency,
        metadata={"booking": str(booking.pk), "booking_short_id": booking.short_id},
        customer=booking.renter.stripe_customer_id or None,
        # A replacement intent must not replay the first request.
        idempotency_key=None if payment is not None else f"booking-{booking.pk}",
    )
    payment, _ = Payment.objects.update_or_create(
        booking=booking,
        defaults={
            "stripe_payment_intent_id": intent["id"],
            "client_secret": intent.get("client_secret", ""),
            "amount": money.amount,
            "currency": booking.currency,
            "status": Payment.Status.REQUIRES_PAYMENT,
            "failure_reason": "",
            "metadata": {"stripe_status": intent.get("status", "")},
        },
    )
    logger.info("payment.intent_created", booking=booking.short_id, payment=payment.short_id, amount=str(money))
    return payment, True


def _record_refund(payment: Payment, refunded_total: Decimal) -> Payment:
    payment.refunded_amount = min(refunded_total, payment.amount)
    payment.status = (
        Payment.Status.REFUNDED
        if payment.refunded_amount >= payment.amount
        else Payment.Status.PARTIALLY_REFUNDED
    )
    payment.save(update_fields=["refunded_amount", "status", "updated_at"])
    return payment


def refund_booking_payment(booking: Booking, refund: Money) -> Payment | None:
    """Refund ``refund`` of the captured payment for ``booking``.

    Raises ``StripeError`` when Stripe refuses, which rolls back the
    surrounding cancellation.
    """
    payment = Payment.objects.filter(booking=booking, status__in=Payment.CAPTURED_STATUSES).first()
    if payment is None:
        logger.warning("payment.refund_without_capture", booking=booking.short_id)
        return None

    amount = min(refund.amount, payment.refundable_amount)
    if amount <= 0:
        return payment

    stripe_service.create_refund(payment.stripe_payment_intent_id, Money(amount, payment.currency).cents)
    _record_refund(payment, payment.refunded_amount + amount)
    logger.info("payment.refunded", booking=booking.short_id, payment=payment.short_id, amount=str(amount))
    return payment


# ============================================================================
# WEBHOOK EVENTS
# ============================================================================

def _payment_for_intent(intent_id: str | None) -> Payment | None:
    if not intent_id:
        return None
    payment = Payment.objects.select_related("booking", "booking__renter", "booking__listing").filter(
        stripe_payment_intent_id=intent_id
    ).first()
    if payment is None:
        logger.warning("payment.unknown_intent", intent=intent_id)
    return payment


def _handle_intent_succeeded(intent: dict[str, Any]) -> Payment | None:
    from apps.bookings.services import mark_booking_paid

    payment = _payment_for_intent(intent.get("id"))
    if payment is None or payment.status not in (*Payment.OPEN_STATUSES, Payment.Status.FAILED):
        return payment

    payment.status = Payment.Status.SUCCEEDED
    payment.succeeded_at = timezone.now()
    payment.failure_reason = ""
    payment.save(update_fields=["status", "succeeded_at", "failure_reason", "updated_at"])

    booking = payment.booking
    if booking.status == Booking.Status.PENDING:
        booking = mark_booking_paid(booking)
        notify(
            booking.renter,
            Notification.Event.PAYMENT_SUCCEEDED,
            f"Payment received for booking #{booking.short_id}",
            f"{payment.money} paid for {booking.listing.title}.",
            booking_payload(booking),
        )
        return payment

    # The hold ran out before the money arrived; give it back.
    stripe_service.create_refund(payment.stripe_payment_intent_id, payment.money.cents)
    _record_refund(payment, payment.amount)
    Booking.objects.filter(pk=booking.pk).update(
        payment_status=Booking.PaymentStatus.REFUNDED,
        refund_amount=payment.amount,
    )
    logger.warning("payment.late_success_refunded", booking=booking.short_id, status=booking.status)
    return payment


def _handle_intent_failed(intent: dict[str, Any]) -> Payment | None:
    payment = _payment_for_intent(intent.get("id"))
    if payment is None or payment.status not in Payment.OPEN_STATUSES:
        return payment

    error = intent.get("last_payment_error") or {}
    payment.status = Payment.Status.FAILED
    payment.failure_reason = (error.get("message") or "Payment failed.")[:255]
    payment.save(update_fields=["status", "failure_reason", "updated_at"])

    booking = payment.booking
    if booking.status == Booking.Status.PENDING:
        Booking.objects.filter(pk=booking.pk).update(payment_status=Booking.PaymentStatus.FAILED)
    notify(
        booking.renter,
        Notification.Event.PAYMENT_FAILED,
        f"Payment failed for booking #{booking.short_id}",
        payment.failure_reason,
        booking_payload(booking),
    )
    return payment


def _handle_charge_refunded(charge: dict[str, Any]) -> Payment | None:
    payment = _payment_for_intent(charge.get("payment_intent"))
    if payment is None:
        return None
    refunded_total = Decimal(int(charge.get("amount_refunded") or 0)) / 100
    if refunded_total > payment.refunded_amount:
        _record_refund(payment, refunded_total)
    return payment


EVENT_HANDLERS: dict[str, Callable[[dict[str, Any]], Payment | None]] = {
    "payment_intent.succeeded": _handle_intent_succeeded,
    "payment_intent.payment_failed": _handle_intent_failed,
    "charge.refunded": _handle_charge_refunded,
}


def handle_event(event: dict[str, Any]) -> PaymentEvent:
    """Store a verified webhook event and apply it once."""
    event_id = event.get("id")
    event_type = event.get("type", "")
    if not event_id:
        raise ValueError("Webhook event has no id.")

    record, created = PaymentEvent.objects.get_or_create(
        stripe_event_id=event_id,
        defaults={"event_type": event_type, "payload": event},
    )
    if not created and record.processed:
        logger.info("payment.event_replayed", event_id=event_id, event_type=event_type)
        return record

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("payment.event_ignored", event_id=event_id, event_type=event_type)
    else:
        data_object = (event.get("data") or {}).get("object") or {}
        try:
            with transaction.atomic():
                record.payment = handler(data_object)
        except StripeError as exc:
            record.error = str(exc)
            record.save(update_fields=["error"])
            raise

    record.processed = True
    record.processed_at = timezone.now()
    record.error = ""
    record.save(update_fields=["payment", "processed", "processed_at", "error"])
    logger.info("payment.event_processed", event_id=event_id, event_type=event_type)
    return record
