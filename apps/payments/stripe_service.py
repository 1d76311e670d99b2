"""Stripe API integration.

Calls go straight to the REST API with ``requests`` (form-encoded bodies,
secret key as basic-auth user). Without a secret key in DEBUG the calls
are emulated so the booking flow can be exercised locally.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from typing import Any

import requests
import structlog
from django.conf import settings  # type: ignore

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT = 30


class StripeError(Exception):
    """Stripe rejected the call or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class WebhookSignatureError(Exception):
    """The ``Stripe-Signature`` header does not match the payload."""


def _is_emulated() -> bool:
    return settings.DEBUG and not settings.STRIPE_SECRET_KEY


def _encode(params: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested dicts into Stripe's ``key[sub]=value`` form fields."""
    encoded: dict[str, str] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            encoded.update(_encode(value, name))
        elif isinstance(value, bool):
            encoded[name] = "true" if value else "false"
        else:
            encoded[name] = str(value)
    return encoded


def _request(method: str, path: str, params: dict[str, Any] | None = None, *, idempotency_key: str | None = None) -> dict:
    url = f"{settings.STRIPE_API_BASE_URL.rstrip('/')}/{path.lstrip('/')}"
    headers = {"Stripe-Version": "2024-06-20"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key

    try:
        response = requests.request(
            method,
            url,
            data=_encode(params or {}) if method != "GET" else None,
            params=_encode(params or {}) if method == "GET" else None,
            auth=(settings.STRIPE_SECRET_KEY, ""),
            headers=headers,
            timeout=REQUEST_TIMEOUT,
        )
    except requests.exceptions.RequestException as exc:
        logger.error("stripe.network_error", path=path, error=str(exc))
        raise StripeError(f"Could not reach Stripe: {exc}") from exc

    try:
        body = response.json()
    except ValueError:
        body = {}

    if not response.ok:
        error = body.get("error") or {}
        message = error.get("message") or f"Stripe returned HTTP {response.status_code}"
        logger.error("stripe.api_error", path=path, status=response.status_code, code=error.get("code"), error=message)
        raise StripeError(message, status_code=response.status_code, code=error.get("code"))
    return body


def create_payment_intent(
    amount_cents: int,
    currency: str,
    metadata: dict[str, str] | None = None,
    customer: str | None = None,
    *,
    idempotency_key: str | None = None,
) -> dict:
    """Create a PaymentIntent; the client confirms it with ``client_secret``."""
    if _is_emulated():
        intent_id = f"pi_test_{uuid.uuid4().hex[:24]}"
        logger.warning("stripe.emulated", call="create_payment_intent", intent=intent_id)
        return {
            "id": intent_id,
            "object": "payment_intent",
            "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            "amount": amount_cents,
            "currency": currency.lower(),
            "status": "requires_payment_method",
            "metadata": metadata or {},
        }

    intent = _request(
        "POST",
        "payment_intents",
        {
            "amount": amount_cents,
            "currency": currency.lower(),
            "customer": customer or None,
            "metadata": metadata or {},
            "automatic_payment_methods": {"enabled": True},
        },
        idempotency_key=idempotency_key,
    )
    logger.info("stripe.payment_intent_created", intent=intent.get("id"), amount=amount_cents)
    return intent


def retrieve_payment_intent(intent_id: str) -> dict:
    if _is_emulated():
        return {"id": intent_id, "object": "payment_intent", "status": "requires_payment_method"}
    return _request("GET", f"payment_intents/{intent_id}")


def create_refund(payment_intent: str, amount_cents: int | None = None) -> dict:
    """Refund ``amount_cents`` of a captured intent, or all of it."""
    if _is_emulated():
        refund_id = f"re_test_{uuid.uuid4().hex[:24]}"
        logger.warning("stripe.emulated", call="create_refund", refund=refund_id)
        return {"id": refund_id, "object": "refund", "status": "succeeded", "amount": amount_cents}

    refund = _request("POST", "refunds", {"payment_intent": payment_intent, "amount": amount_cents})
    logger.info("stripe.refund_created", refund=refund.get("id"), intent=payment_intent, amount=amount_cents)
    return refund


def verify_webhook_signature(
    payload: bytes,
    signature_header: str,
    secret: str | None = None,
    *,
    tolerance: int | None = None,
    now: float | None = None,
) -> dict:
    """Check ``Stripe-Signature`` (``t=<ts>,v1=<hex>``) and return the decoded event."""
    secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured.")

    timestamp = None
    signatures = []
    for item in (signature_header or "").split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header.")

    try:
        timestamp_value = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Malformed Stripe-Signature timestamp.")

    current = now if now is not None else time.time()
    if current - timestamp_value > tolerance:
        raise WebhookSignatureError("Timestamp outside the tolerance zone.")

    signed = timestamp.encode() + b"." + payload
    expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise WebhookSignatureError("No signature matches the payload.")

    try:
        return json.loads(payload)
    except ValueError:
        raise WebhookSignatureError("Webhook payload is not valid JSON.")
