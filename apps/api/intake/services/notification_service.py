"""Practice notification for new widget service requests.

Mail transports log subjects and bodies outside the encryption boundary, so
notifications carry only the service label and the submission reference,
never patient data.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from intake.core.config import settings
from intake.db.enums import ServiceType
from intake.schemas.submissions import LocationContext

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 20.0

SERVICE_LABELS = {
    ServiceType.REZEPT.value: "Rezeptbestellung",
    ServiceType.UEBERWEISUNG.value: "Überweisungswunsch",
    ServiceType.BRILLENVERORDNUNG.value: "Brillenverordnung",
    ServiceType.DOKUMENT.value: "Dokument-Upload",
    ServiceType.TERMIN.value: "Terminanfrage",
    ServiceType.TERMINABSAGE.value: "Terminabsage",
}


@dataclass(frozen=True)
class Notification:
    to_email: str
    subject: str
    text: str
    from_email: str | None = None


class NotificationSender(Protocol):
    def send(self, notification: Notification) -> None:
        """Deliver the notification; raise on failure."""


def service_label(service_type: str) -> str:
    return SERVICE_LABELS.get(service_type, service_type.capitalize() or "Anfrage")


def build_notification(
    submission_id: int | str, service_type: str, location: LocationContext
) -> Notification | None:
    """Notification for a stored service request, or None when no recipient is configured."""
    recipient = location.notification_email or settings.NOTIFICATION_EMAIL
    if not recipient:
        return None

    label = service_label(service_type)
    subject = f"[{location.practice_name}] New {label} (Ref: #{submission_id})"
    text = (
        "Neue Service-Anfrage über das Praxis-Portal:\n\n"
        f"Service: {label}\n"
        f"Referenz: #{submission_id}\n\n"
        "Bitte öffnen Sie das Praxis-Portal für Details.\n"
    )

    from_email = None
    from_address = location.email_from_address or settings.NOTIFICATION_FROM_EMAIL
    if from_address:
        from_name = location.email_from_name or location.practice_name
        # No line breaks in header values
        from_name = from_name.replace("\r", "").replace("\n", "")
        from_email = f"{from_name} <{from_address.strip()}>"

    return Notification(to_email=recipient, subject=subject, text=text, from_email=from_email)


class ResendNotificationSender:
    """Sends plain-text notifications through the Resend API."""

    def __init__(self, api_key: str | None = None, client: httpx.Client | None = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self._client = client

    def send(self, notification: Notification) -> None:
        if not self.api_key:
            raise RuntimeError("Notification sender not configured (missing RESEND_API_KEY)")
        if not notification.from_email:
            raise RuntimeError("Missing From address for notifications (set NOTIFICATION_FROM_EMAIL)")

        payload: dict[str, object] = {
            "from": notification.from_email,
            "to": [notification.to_email],
            "subject": notification.subject,
            "text": notification.text,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self._client is not None:
            response = self._client.post(RESEND_SEND_URL, headers=headers, json=payload)
        else:
            with httpx.Client(timeout=RESEND_TIMEOUT_SECONDS) as client:
                response = client.post(RESEND_SEND_URL, headers=headers, json=payload)
        response.raise_for_status()


def send_submission_notification(
    sender: NotificationSender | None,
    submission_id: int | str,
    service_type: str,
    location: LocationContext,
) -> bool:
    """Best effort: failures are logged and never reach the submitter."""
    if sender is None:
        return False
    notification = build_notification(submission_id, service_type, location)
    if notification is None:
        return False
    try:
        sender.send(notification)
    except Exception:
        logger.exception(
            "Submission notification failed",
            extra={"submission_id": str(submission_id), "service_type": service_type},
        )
        return False
    logger.info(
        "Submission notification sent",
        extra={"submission_id": str(submission_id), "service_type": service_type},
    )
    return True
