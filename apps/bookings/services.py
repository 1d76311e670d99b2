"""Domain services for booking workflows.

Pricing, availability, the status state machine and cancellation refunds
live here. Views and Celery tasks call these functions instead of
mutating bookings directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import Q  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.listings.models import Listing, ListingAvailability
from shared.domain.value_objects import DateRange, Money

from .models import Booking

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from apps.users.models import User

logger = structlog.get_logger(__name__)


class BookingError(Exception):
    """Base class for booking rule violations."""


class BookingConflictError(BookingError):
    """Raised when a listing is busy for requested dates."""


class InvalidTransitionError(BookingError):
    """Raised when a booking cannot move to the requested status."""


# ============================================================================
# PRICING
# ============================================================================

@dataclass(frozen=True)
class BookingQuote:
    nights: int
    nightly_rate: Money
    subtotal: Money
    cleaning_fee: Money
    service_fee: Money
    total: Money

    @property
    def currency(self) -> str:
        return self.total.currency

    def as_dict(self) -> dict[str, Any]:
        return {
            "nights": self.nights,
            "nightly_rate": str(self.nightly_rate.amount),
            "subtotal": str(self.subtotal.amount),
            "cleaning_fee": str(self.cleaning_fee.amount),
            "service_fee": str(self.service_fee.amount),
            "total": str(self.total.amount),
            "currency": self.currency,
        }


def quote_booking(listing: Listing, check_in: date, check_out: date) -> BookingQuote:
    """Price a stay: nights x rate, plus cleaning fee and service fee."""
    stay = DateRange(check_in, check_out)
    nights = len(stay)
    rate = Money(listing.nightly_rate, listing.currency)
    subtotal = (rate * nights).quantize()
    cleaning_fee = Money(listing.cleaning_fee, listing.currency).quantize()
    fee_percent = Decimal(str(settings.DOKKERR["SERVICE_FEE_PERCENT"]))
    service_fee = (subtotal * (fee_percent / Decimal("100"))).quantize()
    return BookingQuote(
        nights=nights,
        nightly_rate=rate.quantize(),
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        service_fee=service_fee,
        total=subtotal + cleaning_fee + service_fee,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================

def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def _overlap(check_in: date, check_out: date, start: str, end: str) -> Q:
    return Q(**{f"{start}__lt": check_out}) & Q(**{f"{end}__gt": check_in})


def conflicting_bookings(listing: Listing, check_in: date, check_out: date, *, exclude_booking_id=None):
    qs = Booking.objects.filter(listing=listing, status__in=Booking.LIVE_STATUSES).filter(
        _overlap(check_in, check_out, "check_in", "check_out")
    )
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    return qs


def conflicting_blocks(listing: Listing, check_in: date, check_out: date, *, exclude_booking_id=None):
    qs = ListingAvailability.objects.filter(listing=listing).filter(
        _overlap(check_in, check_out, "start_date", "end_date")
    )
    if exclude_booking_id is not None:
        qs = qs.exclude(booking_id=exclude_booking_id)
    return qs


def is_listing_available(listing: Listing, check_in: date, check_out: date) -> bool:
    return not (
        conflicting_bookings(listing, check_in, check_out).exists()
        or conflicting_blocks(listing, check_in, check_out).exists()
    )


def ensure_listing_is_available(
    listing: Listing,
    check_in: date,
    check_out: date,
    *,
    exclude_booking_id=None,
) -> None:
    """Ensure the listing is free for the given period.

    Back-to-back stays are fine: ``check_out`` of one booking may equal
    ``check_in`` of the next.
    """
    bookings_qs = _lock_queryset_if_possible(
        conflicting_bookings(listing, check_in, check_out, exclude_booking_id=exclude_booking_id)
    )
    if bookings_qs.exists():
        raise BookingConflictError("The listing is not available for the selected dates.")

    blocks_qs = _lock_queryset_if_possible(
        conflicting_blocks(listing, check_in, check_out, exclude_booking_id=exclude_booking_id)
    )
    if blocks_qs.exists():
        raise BookingConflictError("The listing is not available for the selected dates.")


@transaction.atomic
def reserve_dates_for_booking(booking: Booking) -> ListingAvailability:
    """Creates a booked availability record for the booking period."""
    period, _ = ListingAvailability.objects.update_or_create(
        booking=booking,
        defaults={
            "listing": booking.listing,
            "start_date": booking.check_in,
            "end_date": booking.check_out,
            "status": ListingAvailability.Status.BOOKED,
            "source": ListingAvailability.Source.BOOKING,
            "reason": f"Booking {booking.short_id}",
        },
    )
    return period


@transaction.atomic
def release_dates_for_booking(booking: Booking) -> None:
    """Releases availability previously reserved for a booking."""
    ListingAvailability.objects.filter(booking=booking).delete()


# ============================================================================
# CREATION
# ============================================================================

def validate_booking_request(
    renter: "User",
    listing: Listing,
    check_in: date,
    check_out: date,
    boat_length_ft: Decimal,
) -> list[str]:
    """Return the list of business-rule violations for a booking request."""
    errors = []
    if not listing.is_active:
        errors.append("This listing is not accepting bookings.")
    if listing.owner_id == renter.pk:
        errors.append("You cannot book your own listing.")
    if check_in < timezone.localdate():
        errors.append("check_in cannot be in the past.")
    if check_out <= check_in:
        errors.append("check_out must be after check_in.")
        return errors

    nights = (check_out - check_in).days
    max_nights = min(listing.max_nights, settings.DOKKERR["MAX_BOOKING_NIGHTS"])
    if nights < listing.min_nights:
        errors.append(f"This listing requires at least {listing.min_nights} nights.")
    if nights > max_nights:
        errors.append(f"This listing allows at most {max_nights} nights.")
    if boat_length_ft > listing.max_boat_length_ft:
        errors.append(f"This slip fits boats up to {listing.max_boat_length_ft} ft.")
    return errors


def create_booking(
    renter: "User",
    listing: Listing,
    check_in: date,
    check_out: date,
    *,
    boat_length_ft: Decimal,
    boat_name: str = "",
    guests: int = 1,
    special_requests: str = "",
) -> Booking:
    """Reserve the dates and open a payment hold.

    Raises ``BookingConflictError`` when the dates are taken.
    """
    from apps.notifications.tasks import notify_booking_event

    from .tasks import expire_booking_hold

    hold_minutes = settings.DOKKERR["BOOKING_HOLD_MINUTES"]
    with transaction.atomic():
        # Serialize concurrent requests for the same listing.
        _lock_queryset_if_possible(Listing.objects.filter(pk=listing.pk)).first()
        ensure_listing_is_available(listing, check_in, check_out)

        quote = quote_booking(listing, check_in, check_out)
        booking = Booking.objects.create(
            renter=renter,
            listing=listing,
            check_in=check_in,
            check_out=check_out,
            boat_name=boat_name,
            boat_length_ft=boat_length_ft,
            guests=guests,
            special_requests=special_requests,
            nightly_rate=quote.nightly_rate.amount,
            nights=quote.nights,
            subtotal=quote.subtotal.amount,
            cleaning_fee=quote.cleaning_fee.amount,
            service_fee=quote.service_fee.amount,
            total_price=quote.total.amount,
            currency=quote.currency,
            expires_at=timezone.now() + timezone.timedelta(minutes=hold_minutes),
        )
        reserve_dates_for_booking(booking)

    logger.info(
        "booking.created",
        booking=booking.short_id,
        listing=listing.short_id,
        renter=str(renter.pk),
        total=str(booking.total_price),
    )
    booking_id = str(booking.pk)
    transaction.on_commit(lambda: expire_booking_hold.apply_async(args=[booking_id], countdown=hold_minutes * 60))
    transaction.on_commit(lambda: notify_booking_event.delay(booking_id, "created"))
    return booking


# ============================================================================
# STATE MACHINE
# ============================================================================

def transition(booking: Booking, new_status: str, *, extra_fields: dict[str, Any] | None = None) -> Booking:
    """Move ``booking`` to ``new_status`` and emit ``booking.updated``.

    Raises ``InvalidTransitionError`` for moves the state machine forbids.
    """
    from apps.notifications.tasks import notify_booking_event

    if not booking.can_transition_to(new_status):
        raise InvalidTransitionError(
            f"Cannot change booking status from {booking.status} to {new_status}."
        )

    previous = booking.status
    booking.status = new_status
    update_fields = ["status", "updated_at"]
    timestamp_field = Booking.TIMESTAMP_FIELDS.get(new_status)
    if timestamp_field:
        setattr(booking, timestamp_field, timezone.now())
        update_fields.append(timestamp_field)
    for field, value in (extra_fields or {}).items():
        setattr(booking, field, value)
        update_fields.append(field)
    booking.save(update_fields=update_fields)

    logger.info(
        "booking.status_changed",
        booking=booking.short_id,
        previous=str(previous),
        status=str(booking.status),
    )
    # Workers must read the committed status.
    booking_id = str(booking.pk)
    transaction.on_commit(lambda: notify_booking_event.delay(booking_id, "updated"))
    return booking


def mark_booking_paid(booking: Booking) -> Booking:
    """Payment captured: confirm a pending booking."""
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        return transition(
            booking,
            Booking.Status.CONFIRMED,
            extra_fields={"payment_status": Booking.PaymentStatus.PAID, "expires_at": None},
        )


def confirm_booking(booking: Booking) -> Booking:
    """Owner confirmation of a pending booking that has already been paid."""
    if booking.payment_status != Booking.PaymentStatus.PAID:
        raise InvalidTransitionError("Only paid bookings can be confirmed.")
    return transition(booking, Booking.Status.CONFIRMED, extra_fields={"expires_at": None})


def start_booking(booking: Booking, *, today: date | None = None) -> Booking:
    today = today or timezone.localdate()
    if booking.status == Booking.Status.CONFIRMED and booking.check_in > today:
        raise InvalidTransitionError("Check-in date has not been reached yet.")
    return transition(booking, Booking.Status.ACTIVE)


def complete_booking(booking: Booking) -> Booking:
    return transition(booking, Booking.Status.COMPLETED)


# ============================================================================
# CANCELLATION
# ============================================================================

def refund_ratio(policy: str, days_before_check_in: int, *, cancelled_by_owner: bool = False) -> Decimal:
    """Share of the paid amount returned on cancellation."""
    if cancelled_by_owner:
        return Decimal("1")
    if policy == Listing.CancellationPolicy.FLEXIBLE:
        return Decimal("1") if days_before_check_in >= 1 else Decimal("0")
    if policy == Listing.CancellationPolicy.MODERATE:
        if days_before_check_in >= 5:
            return Decimal("1")
        return Decimal("0.5") if days_before_check_in >= 1 else Decimal("0")
    if policy == Listing.CancellationPolicy.STRICT:
        return Decimal("0.5") if days_before_check_in >= 7 else Decimal("0")
    raise ValueError(f"Unknown cancellation policy: {policy}")


def calculate_refund(booking: Booking, source: str, *, today: date | None = None) -> Money:
    """Refund due for cancelling ``booking`` now.

    Subtotal, cleaning fee and service fee are refunded with the same ratio.
    """
    if booking.payment_status != Booking.PaymentStatus.PAID:
        return Money.zero(booking.currency)
    today = today or timezone.localdate()
    ratio = refund_ratio(
        booking.listing.cancellation_policy,
        (booking.check_in - today).days,
        cancelled_by_owner=source == Booking.CancellationSource.OWNER,
    )
    return (Money(booking.total_price, booking.currency) * ratio).quantize()


def cancel_booking(booking: Booking, *, source: str, reason: str = "") -> Booking:
    """Cancel a pending or confirmed booking, release the dates and refund."""
    from apps.payments.services import refund_booking_payment

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if not booking.can_transition_to(Booking.Status.CANCELLED):
            raise InvalidTransitionError(f"A {booking.status} booking cannot be cancelled.")

        refund = calculate_refund(booking, source)
        extra_fields: dict[str, Any] = {
            "cancellation_source": source,
            "cancellation_reason": reason[:255],
            "refund_amount": refund.amount,
            "expires_at": None,
        }
        if refund.amount > 0:
            refund_booking_payment(booking, refund)
            extra_fields["payment_status"] = Booking.PaymentStatus.REFUNDED

        release_dates_for_booking(booking)
        transition(booking, Booking.Status.CANCELLED, extra_fields=extra_fields)

    logger.info("booking.cancelled", booking=booking.short_id, source=source, refund=str(refund.amount))
    return booking


def expire_booking(booking: Booking) -> bool:
    """Cancel an unpaid booking whose hold ran out. Returns whether it expired."""
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if not booking.should_expire():
            return False
        release_dates_for_booking(booking)
        transition(
            booking,
            Booking.Status.CANCELLED,
            extra_fields={
                "payment_status": Booking.PaymentStatus.FAILED,
                "cancellation_source": Booking.CancellationSource.SYSTEM,
                "cancellation_reason": "Payment was not completed in time.",
            },
        )
    logger.info("booking.expired", booking=booking.short_id)
    return True
