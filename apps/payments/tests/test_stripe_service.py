"""Stripe client tests with ``requests`` mocked out."""

import hashlib
import hmac
import json
import time
from unittest import mock

import pytest
import requests

from apps.payments import stripe_service
from apps.payments.stripe_service import StripeError, WebhookSignatureError

SECRET = "whsec_unit"


def _response(status_code=200, body=None):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.json.return_value = body if body is not None else {}
    return response


def _sign(payload: bytes, timestamp: int, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def test_encode_flattens_nested_params():
    encoded = stripe_service._encode(
        {"amount": 1850, "metadata": {"booking": "abc"}, "automatic_payment_methods": {"enabled": True}, "customer": None}
    )
    assert encoded == {
        "amount": "1850",
        "metadata[booking]": "abc",
        "automatic_payment_methods[enabled]": "true",
    }


@mock.patch("apps.payments.stripe_service.requests.request")
def test_create_payment_intent_posts_form(request_mock, settings):
    settings.STRIPE_SECRET_KEY = "sk_test_unit"
    request_mock.return_value = _response(body={"id": "pi_123", "client_secret": "pi_123_secret"})

    intent = stripe_service.create_payment_intent(18500, "USD", {"booking": "b1"}, idempotency_key="booking-b1")

    assert intent["id"] == "pi_123"
    method, url = request_mock.call_args.args
    kwargs = request_mock.call_args.kwargs
    assert method == "POST"
    assert url == "https://api.stripe.com/v1/payment_intents"
    assert kwargs["data"]["amount"] == "18500"
    assert kwargs["data"]["currency"] == "usd"
    assert kwargs["data"]["metadata[booking]"] == "b1"
    assert kwargs["auth"] == ("sk_test_unit", "")
    assert kwargs["headers"]["Idempotency-Key"] == "booking-b1"


@mock.patch("apps.payments.stripe_service.requests.request")
def test_api_error_raises_with_stripe_message(request_mock):
    request_mock.return_value = _response(402, {"error": {"message": "Your card was declined.", "code": "card_declined"}})
    with pytest.raises(StripeError) as excinfo:
        stripe_service.create_refund("pi_123", 500)
    assert str(excinfo.value) == "Your card was declined."
    assert excinfo.value.status_code == 402
    assert excinfo.value.code == "card_declined"


@mock.patch("apps.payments.stripe_service.requests.request")
def test_network_error_raises_stripe_error(request_mock):
    request_mock.side_effect = requests.exceptions.ConnectTimeout("timed out")
    with pytest.raises(StripeError):
        stripe_service.retrieve_payment_intent("pi_123")


@mock.patch("apps.payments.stripe_service.requests.request")
def test_debug_without_key_emulates_stripe(request_mock, settings):
    settings.DEBUG = True
    settings.STRIPE_SECRET_KEY = ""
    intent = stripe_service.create_payment_intent(1000, "USD")
    refund = stripe_service.create_refund(intent["id"], 1000)
    assert intent["id"].startswith("pi_test_")
    assert intent["client_secret"].startswith(intent["id"])
    assert refund["status"] == "succeeded"
    assert stripe_service.retrieve_payment_intent(intent["id"])["status"] == "requires_payment_method"
    request_mock.assert_not_called()


def test_webhook_signature_accepts_valid_payload():
    payload = json.dumps({"id": "evt_1", "type": "charge.refunded"}).encode()
    now = int(time.time())
    event = stripe_service.verify_webhook_signature(payload, _sign(payload, now), SECRET, tolerance=300)
    assert event["id"] == "evt_1"


def test_webhook_signature_accepts_any_matching_v1():
    payload = b'{"id": "evt_2"}'
    now = int(time.time())
    header = _sign(payload, now) + ",v1=" + "0" * 64
    assert stripe_service.verify_webhook_signature(payload, header, SECRET, tolerance=300)["id"] == "evt_2"


@pytest.mark.parametrize(
    "header_factory",
    [
        lambda payload, now: _sign(payload, now, secret="whsec_other"),
        lambda payload, now: _sign(payload, now - 301),
        lambda payload, now: "v1=deadbeef",
        lambda payload, now: "",
        lambda payload, now: _sign(b"tampered", now),
    ],
)
def test_webhook_signature_rejections(header_factory):
    payload = b'{"id": "evt_3"}'
    now = int(time.time())
    with pytest.raises(WebhookSignatureError):
        stripe_service.verify_webhook_signature(payload, header_factory(payload, now), SECRET, tolerance=300, now=now)
