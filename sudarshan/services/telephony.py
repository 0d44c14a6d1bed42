"""Twilio voice integration: outbound calls, IVR scripts, browser tokens.

The officials' dashboard rings the citizen's browser client
(``client:citizen``) for two kinds of scripted calls:

* **Rejection notices** -- a Hindi announcement reading out the complaint
  id digit by digit and the rejection reason.
* **Audit calls** -- a bilingual satisfaction check that gathers one
  keypad digit and posts it back to the result webhook.

Twilio credentials are mandatory.  :func:`validate_telephony_credentials`
runs during application startup and refuses to continue when they are
missing or malformed.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Final

import structlog
from twilio.jwt.access_token import AccessToken
from twilio.jwt.access_token.grants import VoiceGrant
from twilio.rest import Client
from twilio.twiml.voice_response import Gather, VoiceResponse

if TYPE_CHECKING:
    from config.settings import Settings

logger = structlog.get_logger(__name__)

_VOICE: Final[str] = "Polly.Aditi"
_LANGUAGE: Final[str] = "hi-IN"
_GATHER_TIMEOUT_SECONDS: Final[int] = 10


class TelephonyConfigError(RuntimeError):
    """Twilio credentials are missing or malformed."""


class TelephonyError(Exception):
    """Twilio rejected or failed a request."""


# ---------------------------------------------------------------------------
# Startup validation
# ---------------------------------------------------------------------------


def validate_telephony_credentials(settings: Settings) -> None:
    """Raise :class:`TelephonyConfigError` unless Twilio is fully configured.

    Checks that the account SID starts with ``AC``, that the API key SID
    starts with ``SK``, and that the auth token, API secret, and caller
    number are present.
    """
    problems: list[str] = []

    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        problems.append("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required")
    elif not settings.twilio_account_sid.startswith("AC"):
        problems.append("TWILIO_ACCOUNT_SID must start with 'AC'")

    if not settings.twilio_api_key_sid or not settings.twilio_api_key_secret:
        problems.append("TWILIO_API_KEY_SID and TWILIO_API_KEY_SECRET are required")
    elif not settings.twilio_api_key_sid.startswith("SK"):
        problems.append("TWILIO_API_KEY_SID must start with 'SK' (API Key SID, not the auth token)")

    if not settings.twilio_phone_number:
        problems.append("TWILIO_PHONE_NUMBER is required")

    if problems:
        for problem in problems:
            logger.error("telephony.config_invalid", problem=problem)
        raise TelephonyConfigError("; ".join(problems))

    logger.info(
        "telephony.config_valid",
        account_sid=settings.twilio_account_sid[:6] + "...",
        api_key_sid=settings.twilio_api_key_sid[:6] + "...",
    )


# ---------------------------------------------------------------------------
# TwiML scripts
# ---------------------------------------------------------------------------


def rejection_script(complaint_id: str, reason: str) -> str:
    """TwiML announcing that *complaint_id* was rejected for *reason*."""
    spelled_id = " ".join(complaint_id)
    response = VoiceResponse()
    response.say(
        "नमस्ते। मैं ऑफिसर वाणी बोल रही हूँ। "
        f"आपकी शिकायत संख्या {spelled_id} को अस्वीकार कर दिया गया है। "
        f"इसका कारण है: {reason}। "
        "कृपया दोबारा शिकायत दर्ज करें। असुविधा के लिए खेद है।",
        voice=_VOICE,
        language=_LANGUAGE,
    )
    return str(response)


def audit_prompt_script(department: str, location: str, count: int | str, action_url: str) -> str:
    """TwiML asking the citizen to confirm a department's resolution claim.

    Gathers a single digit (1 = satisfied, 2 = not satisfied).  The result
    webhook is called even when the citizen presses nothing.
    """
    response = VoiceResponse()
    gather = Gather(
        num_digits=1,
        action=action_url,
        method="POST",
        timeout=_GATHER_TIMEOUT_SECONDS,
        action_on_empty_result=True,
    )
    gather.say(
        "नमस्ते। यह दिल्ली सुदर्शन से एक सेवा सत्यापन कॉल है। "
        "Hello. This is a citizen assurance call from Delhi Sudarshan. "
        f"The {department} department claims to have resolved {count} issues in {location}. "
        "As a resident of this area, we request your confirmation. "
        "Are you satisfied with the resolution? "
        "Press 1 for Yes. Press 2 for No.",
        voice=_VOICE,
        language=_LANGUAGE,
    )
    response.append(gather)
    return str(response)


def audit_thanks_script(digit: str | None) -> str:
    response = VoiceResponse()
    if digit:
        response.say(
            "धन्यवाद। आपका उत्तर दर्ज कर लिया गया है। Thank you, your response has been recorded.",
            voice=_VOICE,
            language=_LANGUAGE,
        )
    else:
        response.say(
            "हमें कोई उत्तर नहीं मिला। We did not receive a response. Goodbye.",
            voice=_VOICE,
            language=_LANGUAGE,
        )
    response.hangup()
    return str(response)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TelephonyService:
    """Places Twilio calls and issues browser-calling access tokens.

    The Twilio REST client is synchronous; calls are placed from a worker
    thread.
    """

    __slots__ = (
        "_account_sid",
        "_api_key_secret",
        "_api_key_sid",
        "_client",
        "_default_destination",
        "_from_number",
    )

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        *,
        api_key_sid: str = "",
        api_key_secret: str = "",
        default_destination: str = "client:citizen",
        client: Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._from_number = from_number
        self._api_key_sid = api_key_sid
        self._api_key_secret = api_key_secret
        self._default_destination = default_destination
        self._client = client or Client(account_sid, auth_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> TelephonyService:
        return cls(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
            api_key_sid=settings.twilio_api_key_sid,
            api_key_secret=settings.twilio_api_key_secret,
            default_destination=f"client:{settings.citizen_client_identity}",
        )

    async def place_call(
        self,
        *,
        twiml: str | None = None,
        url: str | None = None,
        to: str | None = None,
    ) -> str:
        """Place a call running *twiml* inline or fetching it from *url*.

        Returns the Twilio call SID.

        Raises
        ------
        TelephonyError
            If Twilio refuses the call or cannot be reached.
        """
        if (twiml is None) == (url is None):
            raise ValueError("exactly one of twiml or url is required")

        destination = to or self._default_destination
        kwargs: dict[str, str] = {"to": destination, "from_": self._from_number}
        if twiml is not None:
            kwargs["twiml"] = twiml
        else:
            kwargs["url"] = url
            kwargs["method"] = "GET"

        try:
            call = await asyncio.to_thread(self._client.calls.create, **kwargs)
        except Exception as exc:
            logger.error("telephony.call_failed", to=destination, error=str(exc))
            raise TelephonyError(str(exc)) from exc

        logger.info("telephony.call_placed", to=destination, call_sid=call.sid)
        return call.sid

    def issue_browser_token(self, identity: str, ttl_seconds: int = 3600) -> str:
        """Return a signed JWT letting the browser client *identity* receive calls."""
        token = AccessToken(
            self._account_sid,
            self._api_key_sid,
            self._api_key_secret,
            identity=identity,
            ttl=ttl_seconds,
        )
        token.add_grant(VoiceGrant(incoming_allow=True))
        jwt = token.to_jwt()
        logger.info("telephony.token_issued", identity=identity)
        return jwt.decode() if isinstance(jwt, bytes) else jwt
