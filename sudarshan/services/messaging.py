"""SMS delivery and phone-number handling.

Phone numbers are stored exactly as the citizen typed them.  They are
normalized only here, at the moment an SMS goes out, by
:func:`normalize_phone` -- the single place that knows the rules:

* strip whitespace and hyphens;
* prefix the default country code (``+91``) unless the number already
  starts with ``+``.

SMS gateways are pluggable adapters selected by configuration:

* ``twilio``  -- Twilio Programmable Messaging REST API.
* ``msg91``   -- MSG91 flow API (popular Indian transactional gateway).
* ``mock``    -- logs the message; for local development and tests.
"""

from __future__ import annotations

import re
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final
from uuid import uuid4

import httpx
import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_COUNTRY_CODE: Final[str] = "+91"

# Extraction fills a missing phone with "+91 00000 00000".
UNPROVIDED_PHONE_MARKER: Final[str] = "00000"

_MIN_PHONE_LENGTH: Final[int] = 10

_SEPARATORS_RE: Final[re.Pattern[str]] = re.compile(r"[\s\-]+")


# ---------------------------------------------------------------------------
# Phone number utilities
# ---------------------------------------------------------------------------


def is_contactable_phone(phone: str | None) -> bool:
    """Whether *phone* is worth an SMS attempt.

    Rejects empty values, anything of 9 characters or fewer, and the
    "unprovided" placeholder.
    """
    if not phone:
        return False
    phone = phone.strip()
    return len(phone) >= _MIN_PHONE_LENGTH and UNPROVIDED_PHONE_MARKER not in phone


def normalize_phone(phone: str, default_country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Return *phone* in ``+<country><number>`` form.

    >>> normalize_phone("98765 43210")
    '+919876543210'
    >>> normalize_phone("+1 415-555-0100")
    '+14155550100'
    """
    cleaned = _SEPARATORS_RE.sub("", phone)
    if not cleaned.startswith("+"):
        cleaned = f"{default_country_code}{cleaned}"
    return cleaned


# ---------------------------------------------------------------------------
# Delivery status
# ---------------------------------------------------------------------------


class DeliveryState(StrEnum):
    """Message delivery states across providers."""

    __slots__ = ()

    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    MOCK = "mock"


class DeliveryStatus(BaseModel):
    """Delivery status for one outbound SMS."""

    message_id: str = Field(default_factory=lambda: uuid4().hex)
    channel: str = "sms"
    to: str
    status: DeliveryState = DeliveryState.QUEUED
    provider: str = ""
    provider_message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    raw_response: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def ok(self) -> bool:
        return self.status != DeliveryState.FAILED


# ---------------------------------------------------------------------------
# SMS provider implementations
# ---------------------------------------------------------------------------


class _SMSProviderBase:
    """Abstract base for SMS gateway providers."""

    async def send(self, to: str, sender: str, message: str) -> dict[str, Any]:
        raise NotImplementedError


class _TwilioProvider(_SMSProviderBase):
    """Twilio Programmable Messaging."""

    _BASE_URL: Final[str] = "https://api.twilio.com/2010-04-01/Accounts"

    def __init__(self, account_sid: str, auth_token: str) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token

    async def send(self, to: str, sender: str, message: str) -> dict[str, Any]:
        payload = {"To": to, "From": sender, "Body": message}
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                f"{self._BASE_URL}/{self._account_sid}/Messages.json",
                data=payload,
                auth=(self._account_sid, self._auth_token),
            )
            response.raise_for_status()
            return response.json()


class _MSG91Provider(_SMSProviderBase):
    """MSG91 SMS gateway."""

    _BASE_URL: Final[str] = "https://api.msg91.com/api/v5/flow/"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def send(self, to: str, sender: str, message: str) -> dict[str, Any]:
        headers = {"authkey": self._api_key, "Content-Type": "application/json"}
        payload = {
            "flow_id": "sudarshan_sms",
            "sender": sender or "SDRSHN",
            "recipients": [{"mobiles": to.lstrip("+"), "message": message}],
        }
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(self._BASE_URL, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()


class _MockProvider(_SMSProviderBase):
    """Mock SMS provider for local development and testing."""

    async def send(self, to: str, sender: str, message: str) -> dict[str, Any]:
        logger.info(
            "mock_sms.sent",
            to=to,
            message_preview=message[:80],
            length=len(message),
        )
        return {"status": "mock", "sid": f"mock_{uuid4().hex[:12]}", "to": to}


def build_sms_provider(
    name: str,
    *,
    account_sid: str = "",
    auth_token: str = "",
    api_key: str = "",
) -> _SMSProviderBase:
    """Instantiate the SMS adapter registered under *name*."""
    if name == "twilio":
        return _TwilioProvider(account_sid, auth_token)
    if name == "msg91":
        return _MSG91Provider(api_key)
    if name == "mock":
        return _MockProvider()
    raise ValueError(f"Unknown SMS provider {name!r}. Supported: mock, msg91, twilio.")


# ---------------------------------------------------------------------------
# Messaging Service
# ---------------------------------------------------------------------------


class MessagingService:
    """Sends SMS through the configured gateway.

    ``send_sms`` never raises: gateway failures come back as a
    :class:`DeliveryStatus` with ``status == FAILED``.
    """

    __slots__ = (
        "_default_country_code",
        "_provider",
        "_provider_name",
        "_sender",
    )

    def __init__(
        self,
        provider: _SMSProviderBase,
        sender: str = "",
        *,
        provider_name: str = "",
        default_country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        self._provider = provider
        self._provider_name = provider_name or type(provider).__name__
        self._sender = sender
        self._default_country_code = default_country_code
        logger.info("messaging_service.initialised", sms_provider=self._provider_name)

    async def send_sms(self, to: str, message: str) -> DeliveryStatus:
        """Normalize *to* and send *message* to it."""
        start = time.perf_counter()
        phone = normalize_phone(to, self._default_country_code)
        log = logger.bind(channel="sms", to=phone, provider=self._provider_name)

        try:
            result = await self._provider.send(phone, self._sender, message)

            provider_msg_id = result.get("sid", result.get("message_id", result.get("id", "")))
            provider_status = result.get("status", "sent")

            if provider_status == "mock":
                mapped_status = DeliveryState.MOCK
            elif provider_status in ("sent", "submitted", "success"):
                mapped_status = DeliveryState.SENT
            else:
                mapped_status = DeliveryState.QUEUED

            status = DeliveryStatus(
                to=phone,
                status=mapped_status,
                provider=self._provider_name,
                provider_message_id=str(provider_msg_id),
                sent_at=datetime.now(UTC),
                raw_response=result,
            )
            log.info(
                "sms.sent",
                provider_id=provider_msg_id,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )

        except Exception as exc:
            status = DeliveryStatus(
                to=phone,
                status=DeliveryState.FAILED,
                provider=self._provider_name,
                error_message=str(exc),
            )
            log.error("sms.send_failed", error=str(exc), exc_info=True)

        return status
