"""Tests for practice notifications on new service requests."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from intake.schemas.submissions import LocationContext
from intake.services.notification_service import (
    RESEND_SEND_URL,
    Notification,
    ResendNotificationSender,
    build_notification,
    send_submission_notification,
    service_label,
)


@pytest.fixture
def location():
    return LocationContext(
        location_id="1",
        practice_name="Praxis Dr. Muster",
        notification_email="team@praxis.example",
        email_from_address="noreply@praxis.example",
    )


def test_service_label_falls_back_to_capitalized_type():
    assert service_label("rezept") == "Rezeptbestellung"
    assert service_label("impfung") == "Impfung"


def test_notification_contains_only_label_and_reference(location):
    notification = build_notification("AB12CD34", "termin", location)

    assert notification.to_email == "team@praxis.example"
    assert notification.subject == "[Praxis Dr. Muster] New Terminanfrage (Ref: #AB12CD34)"
    assert "Terminanfrage" in notification.text
    assert "#AB12CD34" in notification.text
    assert notification.from_email == "Praxis Dr. Muster <noreply@praxis.example>"


def test_notification_from_name_has_no_line_breaks(location):
    location = location.model_copy(update={"email_from_name": "Praxis\r\nBcc: evil@example.com"})

    notification = build_notification("REF", "termin", location)

    assert "\n" not in notification.from_email
    assert "\r" not in notification.from_email


def test_no_recipient_means_no_notification(location, monkeypatch):
    from intake.services import notification_service

    monkeypatch.setattr(notification_service.settings, "NOTIFICATION_EMAIL", None)
    location = location.model_copy(update={"notification_email": None})

    assert build_notification("REF", "termin", location) is None


def test_send_failure_is_swallowed_and_logged(location, caplog):
    sender = MagicMock()
    sender.send.side_effect = RuntimeError("smtp down")

    assert send_submission_notification(sender, "REF", "termin", location) is False
    assert "Submission notification failed" in caplog.text


def test_send_success(location):
    sender = MagicMock()

    assert send_submission_notification(sender, "REF", "rezept", location) is True
    notification = sender.send.call_args.args[0]
    assert notification.subject.endswith("New Rezeptbestellung (Ref: #REF)")


def test_missing_sender_skips_notification(location):
    assert send_submission_notification(None, "REF", "termin", location) is False


def test_resend_sender_posts_plain_text_email():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_1"})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    sender = ResendNotificationSender(api_key="re_test", client=client)

    sender.send(
        Notification(
            to_email="team@praxis.example",
            subject="[Praxis] New Terminanfrage (Ref: #REF)",
            text="Service: Terminanfrage",
            from_email="Praxis <noreply@praxis.example>",
        )
    )

    assert captured["url"] == RESEND_SEND_URL
    assert captured["auth"] == "Bearer re_test"
    assert captured["payload"]["to"] == ["team@praxis.example"]
    assert "html" not in captured["payload"]


def test_resend_sender_raises_on_http_error():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    sender = ResendNotificationSender(api_key="re_test", client=client)

    with pytest.raises(httpx.HTTPStatusError):
        sender.send(Notification("a@praxis.example", "s", "t", from_email="P <n@praxis.example>"))


def test_resend_sender_requires_configuration():
    sender = ResendNotificationSender(api_key="")

    with pytest.raises(RuntimeError, match="RESEND_API_KEY"):
        sender.send(Notification("a@praxis.example", "s", "t", from_email="x"))
