"""Verification-call correlation for surprise audits.

When a department claims to have resolved a batch of complaints in an
area, an official can ring a resident and ask whether they agree.  The
call is placed asynchronously; the citizen's keypad answer arrives later
on a webhook carrying the call SID.  This module ties the two together.

Per call::

    pending ──record_result(digit)──▶ "1" | "2" | <digit>
       │
       └──record_result(None)──────▶ "no-input"

Resolution is terminal: later results for the same call are ignored.
Calls that never receive a webhook stay ``pending`` indefinitely.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final, Protocol
from urllib.parse import urlencode

import structlog

logger = structlog.get_logger(__name__)

PENDING: Final[str] = "pending"
NO_INPUT: Final[str] = "no-input"


class CallPlacer(Protocol):
    async def place_call(
        self,
        *,
        twiml: str | None = None,
        url: str | None = None,
        to: str | None = None,
    ) -> str: ...


@dataclass(slots=True)
class AuditCall:
    call_id: str
    status: str = PENDING
    department: str = ""
    location: str = ""
    count: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    resolved_at: datetime | None = None

    @property
    def resolved(self) -> bool:
        return self.status != PENDING


class AuditCallCorrelator:
    """Tracks audit calls from placement to the citizen's answer.

    Parameters
    ----------
    telephony:
        Places the outbound call.
    public_url:
        Base URL Twilio uses to fetch the IVR prompt.
    """

    __slots__ = ("_calls", "_lock", "_public_url", "_telephony")

    def __init__(self, telephony: CallPlacer, public_url: str) -> None:
        self._telephony = telephony
        self._public_url = public_url.rstrip("/")
        self._calls: dict[str, AuditCall] = {}
        self._lock = asyncio.Lock()

    def prompt_url(self, location: str, department: str, count: int) -> str:
        query = urlencode({"dept": department, "loc": location, "count": count})
        return f"{self._public_url}/api/v1/audit/prompt?{query}"

    @property
    def result_url(self) -> str:
        return f"{self._public_url}/api/v1/audit/result"

    async def start_audit(self, location: str, department: str, count: int) -> str:
        """Ring a resident about *department*'s claim in *location*.

        Returns the call SID, registered as ``pending``.

        Raises
        ------
        TelephonyError
            Propagated from the telephony adapter; nothing is recorded.
        """
        logger.info("audit.starting", department=department, location=location, count=count)
        call_id = await self._telephony.place_call(
            url=self.prompt_url(location, department, count),
        )

        async with self._lock:
            # The result webhook can beat this registration.
            call = self._calls.setdefault(call_id, AuditCall(call_id=call_id))
            call.department = department
            call.location = location
            call.count = count

        logger.info("audit.call_registered", call_id=call_id, status=call.status)
        return call_id

    async def record_result(self, call_id: str, digit: str | None) -> str:
        """Store the citizen's answer for *call_id* and return the final status.

        A missing or blank digit is stored as ``"no-input"``.  Results for
        an already-resolved call are ignored.
        """
        value = (digit or "").strip() or NO_INPUT

        async with self._lock:
            call = self._calls.setdefault(call_id, AuditCall(call_id=call_id))
            if call.resolved:
                logger.warning(
                    "audit.duplicate_result_ignored",
                    call_id=call_id,
                    existing=call.status,
                    received=value,
                )
                return call.status
            call.status = value
            call.resolved_at = datetime.now(UTC)

        logger.info("audit.result_recorded", call_id=call_id, status=value)
        return value

    async def check_status(self, call_id: str) -> str:
        """Return the digit, ``"no-input"``, or ``"pending"``.

        Unknown call ids also report ``"pending"``.
        """
        async with self._lock:
            call = self._calls.get(call_id)
            return call.status if call is not None else PENDING

    async def get_call(self, call_id: str) -> AuditCall | None:
        async with self._lock:
            return self._calls.get(call_id)
