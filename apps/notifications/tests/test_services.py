from __future__ import annotations

from unittest import mock

import pytest
from django.core import mail

from apps.notifications.services import send_email_notification


def test_send_email_notification_uses_context_message():
    assert send_email_notification("a@example.com", "Hello", {"message": "Plain body"})
    assert len(mail.outbox) == 1
    assert mail.outbox[0].body == "Plain body"
    assert mail.outbox[0].to == ["a@example.com"]


def test_send_email_notification_html_gets_text_alternative():
    assert send_email_notification("a@example.com", "Hello", {}, html_message="<p>Hi <b>there</b></p>")
    message = mail.outbox[0]
    assert message.body == "Hi there"
    assert message.alternatives[0][1] == "text/html"


@pytest.mark.parametrize("error", [OSError("smtp down"), ValueError("bad header")])
def test_send_email_notification_failure_is_reported_not_raised(error):
    with mock.patch("apps.notifications.services.send_mail", side_effect=error):
        assert send_email_notification("a@example.com", "Hello", {"message": "x"}) is False
