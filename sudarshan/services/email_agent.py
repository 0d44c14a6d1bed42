"""Background agent turning inbound email into registered complaints.

Each cycle::

    connect ─▶ fetch unseen ─▶ for each message:
                                   parse ─▶ extract (Gemini) ─▶ classify
                                   ─▶ register ─▶ notify

Fetching marks messages as seen, so a message is processed at most once.
A failure on one message is logged and the rest of the batch continues.
A connection failure aborts the cycle; the next tick tries again with no
backoff.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final, Protocol

import structlog

from sudarshan.models.enums import ComplaintSource
from sudarshan.services.classifier import classify_department
from sudarshan.services.complaints import ComplaintService
from sudarshan.services.mail import MailboxError, parse_email

logger = structlog.get_logger(__name__)

MIN_BODY_LENGTH: Final[int] = 10
DEFAULT_TYPE: Final[str] = "General Grievance"
UNPROVIDED_PHONE: Final[str] = "+91 00000 00000"

_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class Mailbox(Protocol):
    async def fetch_unseen(self) -> list[bytes]: ...


class ComplaintExtractor(Protocol):
    async def extract_complaint(self, email_body: str) -> str: ...


@dataclass(slots=True)
class IntakeCycleResult:
    """Outcome of one polling cycle."""

    fetched: int = 0
    created: list[str] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0
    connection_failed: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_response(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "created": list(self.created),
            "skipped": self.skipped,
            "failed": self.failed,
            "connectionFailed": self.connection_failed,
        }


class MalformedExtractionError(ValueError):
    """The model's answer was not a JSON object."""


def parse_extraction(text: str) -> dict[str, Any]:
    """Decode the model's extraction answer, tolerating markdown fences.

    Raises
    ------
    MalformedExtractionError
        If the text is not a JSON object.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedExtractionError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedExtractionError(f"expected an object, got {type(data).__name__}")
    return data


def _field(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


class EmailIntakeAgent:
    """Polls a mailbox and registers a complaint for every usable email.

    Parameters
    ----------
    mailbox:
        Source of unseen raw messages.
    llm:
        Extracts ``{name, phone, type, loc, desc}`` from an email body.
    complaints:
        Registration path shared with the other channels.
    interval_seconds:
        Pause between cycles.
    initial_delay_seconds:
        Pause before the first cycle after startup.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        llm: ComplaintExtractor,
        complaints: ComplaintService,
        *,
        interval_seconds: float = 30.0,
        initial_delay_seconds: float = 5.0,
    ) -> None:
        self._mailbox = mailbox
        self._llm = llm
        self._complaints = complaints
        self._interval = interval_seconds
        self._initial_delay = initial_delay_seconds
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._running = False
        self._last_cycle: IntakeCycleResult | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_cycle(self) -> IntakeCycleResult | None:
        return self._last_cycle

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def tick(self) -> IntakeCycleResult:
        """Run one poll-and-register cycle."""
        result = IntakeCycleResult()

        try:
            messages = await self._mailbox.fetch_unseen()
        except MailboxError as exc:
            logger.error("email_agent.connection_failed", error=str(exc))
            result.connection_failed = True
            self._last_cycle = result
            return result

        result.fetched = len(messages)
        if messages:
            logger.info("email_agent.new_messages", count=len(messages))

        for raw in messages:
            try:
                complaint_id = await self._process(raw)
            except Exception:
                logger.error("email_agent.message_failed", exc_info=True)
                result.failed += 1
                continue
            if complaint_id is None:
                result.skipped += 1
            else:
                result.created.append(complaint_id)

        logger.info(
            "email_agent.cycle_complete",
            fetched=result.fetched,
            created=len(result.created),
            skipped=result.skipped,
            failed=result.failed,
        )
        self._last_cycle = result
        return result

    async def _process(self, raw: bytes) -> str | None:
        try:
            parsed = parse_email(raw)
        except ValueError:
            logger.warning("email_agent.unparseable_message")
            return None

        log = logger.bind(sender=parsed.sender, subject=parsed.subject)
        if len(parsed.body) < MIN_BODY_LENGTH:
            log.info("email_agent.body_too_short", length=len(parsed.body))
            return None

        log.info("email_agent.extracting")
        text = await self._llm.extract_complaint(parsed.body)
        try:
            extracted = parse_extraction(text)
        except MalformedExtractionError as exc:
            log.warning("email_agent.malformed_extraction", error=str(exc), raw=text)
            return None

        complaint_type = _field(extracted, "type") or DEFAULT_TYPE
        name = _field(extracted, "name")
        extracted_description = _field(extracted, "desc", "description") or parsed.body
        department = classify_department(complaint_type, parsed.subject, extracted_description)
        description = f"{extracted_description} (Via Email: {name or parsed.sender})"

        complaint = await self._complaints.register(
            {
                "type": complaint_type,
                "description": description,
                "location": _field(extracted, "loc", "location"),
                "phone": _field(extracted, "phone") or UNPROVIDED_PHONE,
                "department": department,
                "email": parsed.sender,
                "name": name,
                "subject": parsed.subject,
            },
            ComplaintSource.EMAIL,
        )
        log.info("email_agent.complaint_created", complaint_id=complaint.id, department=department)
        return complaint.id

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start_background_loop(self) -> None:
        """Schedule the polling loop on the running event loop."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_forever(), name="email-intake-agent")

    async def _run_forever(self) -> None:
        self._running = True
        logger.info(
            "email_agent.started",
            interval_s=self._interval,
            initial_delay_s=self._initial_delay,
        )
        try:
            await asyncio.sleep(self._initial_delay)
            while self._running:
                await self._safe_tick()
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("email_agent.cancelled")
        finally:
            self._running = False
            logger.info("email_agent.stopped")

    async def _safe_tick(self) -> IntakeCycleResult | None:
        try:
            return await self.tick()
        except Exception:
            logger.error("email_agent.cycle_failed", exc_info=True)
            return None

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except (asyncio.CancelledError, asyncio.TimeoutError):
                pass
            self._task = None
