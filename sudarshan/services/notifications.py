"""Citizen confirmations for newly registered complaints.

Two independent, best-effort channels:

* **SMS** -- when the complaint carries a usable phone number.  The text
  carries the complaint id, category, department, and a link to the
  evidence-upload page.
* **Email** -- when the complaint carries an address (email-channel
  complaints).  A formatted HTML + plain-text confirmation.

A failure on one channel is logged and does not affect the other, and
neither can undo the complaint's registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Final, Protocol

import structlog

from sudarshan.models.complaint import Complaint
from sudarshan.models.enums import ComplaintSource
from sudarshan.services.messaging import DeliveryStatus, MessagingService, is_contactable_phone

logger = structlog.get_logger(__name__)

PORTAL_NAME: Final[str] = "दिल्ली सुदर्शन"

_SMS_TEMPLATES: Final[dict[str, str]] = {
    "registered": (
        "{portal}\n"
        "Complaint Registered!\n"
        "ID: {id}\n"
        "Category: {category}\n"
        "Dept: {department}\n\n"
        "Upload Evidence:\n{upload_link}"
    ),
    "email_received": (
        "{portal}\n"
        "Email Received!\n"
        "Complaint ID: {id}\n"
        "Category: {category}\n"
        "Dept: {department}\n"
        "Status: Registered\n\n"
        "Upload Evidence here:\n{upload_link}"
    ),
}

_EMAIL_SUBJECT: Final[str] = "Complaint Registered: {id}"

_EMAIL_TEXT: Final[str] = """\
Dear {name},

Your complaint has been registered with Delhi Sudarshan.

Complaint ID: {id}
Category:     {category}
Department:   {department}
Location:     {location}
Status:       {status}

You can upload photo evidence for this complaint here:
{upload_link}

Please quote the complaint ID in any further correspondence.

-- Delhi Sudarshan Grievance Cell
"""

_EMAIL_HTML: Final[str] = """\
<html>
  <body style="font-family: Arial, sans-serif; color: #1f2933;">
    <h2>Complaint Registered</h2>
    <p>Dear {name},</p>
    <p>Your complaint has been registered with Delhi Sudarshan.</p>
    <table cellpadding="6" style="border-collapse: collapse;">
      <tr><td><b>Complaint ID</b></td><td>{id}</td></tr>
      <tr><td><b>Category</b></td><td>{category}</td></tr>
      <tr><td><b>Department</b></td><td>{department}</td></tr>
      <tr><td><b>Location</b></td><td>{location}</td></tr>
      <tr><td><b>Status</b></td><td>{status}</td></tr>
    </table>
    <p><a href="{upload_link}">Upload photo evidence</a></p>
    <p style="font-size: 12px; color: #6b7280;">
      Please quote the complaint ID in any further correspondence.
    </p>
  </body>
</html>
"""


class Mailer(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str) -> None: ...


@dataclass(slots=True)
class NotificationReport:
    """What happened on each channel for one complaint.

    ``None`` means the channel was not attempted.
    """

    sms: DeliveryStatus | None = None
    email_sent: bool | None = None


def has_usable_email(address: str | None) -> bool:
    return bool(address) and "@" in address


class NotificationDispatcher:
    """Sends SMS and email confirmations for a complaint.

    Parameters
    ----------
    messaging:
        SMS sender.  ``None`` disables the SMS channel.
    mailer:
        Transactional email sender.  ``None`` disables the email channel.
    public_url:
        Base URL used to build the evidence-upload link.
    """

    __slots__ = ("_mailer", "_messaging", "_public_url")

    def __init__(
        self,
        messaging: MessagingService | None,
        mailer: Mailer | None,
        public_url: str,
    ) -> None:
        self._messaging = messaging
        self._mailer = mailer
        self._public_url = public_url.rstrip("/")

    def upload_link(self, complaint_id: str) -> str:
        return f"{self._public_url}/upload.html?id={complaint_id}"

    async def notify(self, complaint: Complaint) -> NotificationReport:
        """Send every applicable confirmation.  Never raises."""
        report = NotificationReport()
        log = logger.bind(complaint_id=complaint.id, source=complaint.source)

        if self._messaging is not None and is_contactable_phone(complaint.phone):
            report.sms = await self._send_sms(complaint, log)
        else:
            log.debug("notify.sms_skipped")

        if self._mailer is not None and has_usable_email(complaint.email):
            report.email_sent = await self._send_email(complaint, log)
        else:
            log.debug("notify.email_skipped")

        return report

    async def _send_sms(
        self,
        complaint: Complaint,
        log: structlog.stdlib.BoundLogger,
    ) -> DeliveryStatus | None:
        template = "email_received" if complaint.source == ComplaintSource.EMAIL else "registered"
        body = _SMS_TEMPLATES[template].format(
            portal=PORTAL_NAME,
            id=complaint.id,
            category=complaint.type or "General Grievance",
            department=complaint.department,
            upload_link=self.upload_link(complaint.id),
        )
        try:
            status = await self._messaging.send_sms(complaint.phone, body)
        except Exception:
            log.error("notify.sms_failed", exc_info=True)
            return None

        if status.ok:
            log.info("notify.sms_sent", to=status.to)
        else:
            log.warning("notify.sms_failed", error=status.error_message)
        return status

    async def _send_email(
        self,
        complaint: Complaint,
        log: structlog.stdlib.BoundLogger,
    ) -> bool:
        fields = {
            "name": complaint.name or "Citizen",
            "id": complaint.id,
            "category": complaint.type or "General Grievance",
            "department": complaint.department,
            "location": complaint.location or "Not specified",
            "status": complaint.status,
            "upload_link": self.upload_link(complaint.id),
        }
        try:
            await self._mailer.send(
                complaint.email,
                _EMAIL_SUBJECT.format(id=complaint.id),
                _EMAIL_HTML.format(**{key: escape(str(value)) for key, value in fields.items()}),
                _EMAIL_TEXT.format(**fields),
            )
        except Exception:
            log.error("notify.email_failed", to=complaint.email, exc_info=True)
            return False

        log.info("notify.email_sent", to=complaint.email)
        return True
