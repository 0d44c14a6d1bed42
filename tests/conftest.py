"""Shared fixtures: in-memory doubles for every collaborator adapter.

All tests run WITHOUT network access: telephony, SMS, SMTP, IMAP, and
Gemini are replaced by the fakes below and handed to tests as fixtures.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date

import pytest

from sudarshan.models.complaint import Complaint, Coordinates
from sudarshan.models.enums import ComplaintSource, Department
from sudarshan.services.messaging import DeliveryState, DeliveryStatus
from sudarshan.services.store import InMemoryComplaintStore
from sudarshan.services.telephony import TelephonyError


class FakeTelephony:
    """Records placed calls; fails every call while ``fail`` is set."""

    def __init__(self) -> None:
        self.fail = False
        self.calls: list[dict] = []

    async def place_call(self, *, twiml=None, url=None, to=None) -> str:
        if self.fail:
            raise TelephonyError("Twilio unreachable")
        self.calls.append({"twiml": twiml, "url": url, "to": to})
        return f"CA{len(self.calls):032d}"

    def issue_browser_token(self, identity: str, ttl_seconds: int = 3600) -> str:
        return f"jwt-for-{identity}"


class FakeMessaging:
    def __init__(self) -> None:
        self.fail = False
        self.sent: list[tuple[str, str]] = []

    async def send_sms(self, to: str, message: str) -> DeliveryStatus:
        if self.fail:
            raise RuntimeError("gateway down")
        self.sent.append((to, message))
        return DeliveryStatus(to=to, status=DeliveryState.MOCK, provider="fake")


class FakeMailer:
    def __init__(self) -> None:
        self.fail = False
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        if self.fail:
            raise OSError("smtp refused")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


class FakeClassifier:
    """Returns ``answer``, or raises it when it is an exception."""

    def __init__(self) -> None:
        self.answer: str | Exception = "VALID"
        self.calls = 0

    async def classify_image(self, image_bytes: bytes, mime_type: str) -> str:
        self.calls += 1
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


class FakeStorage:
    def __init__(self) -> None:
        self.fail = False
        self.saved: dict[str, bytes] = {}

    async def save(self, name: str, data: bytes) -> str:
        if self.fail:
            raise OSError(28, "No space left on device")
        self.saved[name] = data
        return f"https://example.test/uploads/{name}"


def _complaint(complaint_id: str = "SIGW-1234", **overrides) -> Complaint:
    fields = {
        "id": complaint_id,
        "type": "Pothole",
        "description": "Deep pothole outside the school gate",
        "location": "Karol Bagh",
        "date": date(2025, 1, 15),
        "phone": "98765 43210",
        "department": Department.ROADS,
        "coordinates": Coordinates(lat=28.65, long=77.19),
        "source": ComplaintSource.WEB,
    }
    fields.update(overrides)
    return Complaint(**fields)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_complaint() -> Callable[..., Complaint]:
    """Factory for a web complaint; keyword overrides replace fields."""
    return _complaint


@pytest.fixture
def store() -> InMemoryComplaintStore:
    return InMemoryComplaintStore()


@pytest.fixture
def fake_telephony() -> FakeTelephony:
    return FakeTelephony()


@pytest.fixture
def fake_messaging() -> FakeMessaging:
    return FakeMessaging()


@pytest.fixture
def fake_mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()
