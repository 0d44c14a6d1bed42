"""Mailbox polling, message parsing, and transactional email.

``imaplib`` and ``smtplib`` are blocking, so every network call runs in a
worker thread through :func:`asyncio.to_thread` and never stalls the
event loop that serves HTTP requests.

Fetching a message with ``RFC822`` sets its ``\\Seen`` flag on the
server.  A crash between fetch and processing therefore loses that
message: intake is at-most-once.
"""

from __future__ import annotations

import asyncio
import email
import imaplib
import re
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.policy import default as default_policy
from email.utils import parseaddr
from typing import Final

import structlog

logger = structlog.get_logger(__name__)

_TAG_RE: Final[re.Pattern[str]] = re.compile(r"<[^>]+>")
_BLANK_LINES_RE: Final[re.Pattern[str]] = re.compile(r"\n\s*\n+")


class MailboxError(Exception):
    """The mailbox could not be reached, authenticated, or searched."""


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ParsedEmail:
    sender: str
    subject: str
    body: str


def parse_email(raw: bytes) -> ParsedEmail:
    """Extract sender address, subject, and plain-text body from *raw*.

    Falls back to the HTML part with tags stripped when there is no
    ``text/plain`` part.

    Raises
    ------
    ValueError
        If the message has no readable text body.
    """
    message = email.message_from_bytes(raw, policy=default_policy)

    _, sender = parseaddr(str(message.get("From", "")))
    subject = str(message.get("Subject", "")).strip()

    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        raise ValueError("message has no text body")

    body = part.get_content()
    if part.get_content_subtype() == "html":
        body = _TAG_RE.sub(" ", body)
    body = _BLANK_LINES_RE.sub("\n\n", body).strip()

    return ParsedEmail(sender=sender, subject=subject, body=body)


# ---------------------------------------------------------------------------
# IMAP mailbox
# ---------------------------------------------------------------------------


class ImapMailbox:
    """Reads unseen messages from an IMAP inbox over TLS.

    Parameters
    ----------
    timeout:
        Socket timeout for connect and login, in seconds.  Kept short so
        an unreachable server cannot hang a polling cycle.
    """

    __slots__ = ("_folder", "_host", "_password", "_port", "_timeout", "_user")

    def __init__(
        self,
        host: str,
        user: str,
        password: str,
        *,
        port: int = 993,
        timeout: float = 3.0,
        folder: str = "INBOX",
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._timeout = timeout
        self._folder = folder

    async def fetch_unseen(self) -> list[bytes]:
        """Return the raw RFC 822 bytes of every unseen message.

        Raises
        ------
        MailboxError
            On any connection, authentication, or protocol failure.
        """
        return await asyncio.to_thread(self._fetch_unseen_sync)

    def _fetch_unseen_sync(self) -> list[bytes]:
        try:
            connection = imaplib.IMAP4_SSL(self._host, self._port, timeout=self._timeout)
        except OSError as exc:
            raise MailboxError(f"cannot reach {self._host}:{self._port}: {exc}") from exc

        try:
            connection.login(self._user, self._password)
            status, _ = connection.select(self._folder)
            if status != "OK":
                raise MailboxError(f"cannot open folder {self._folder!r}")

            status, data = connection.search(None, "UNSEEN")
            if status != "OK":
                raise MailboxError("UNSEEN search failed")

            messages: list[bytes] = []
            for number in data[0].split():
                status, parts = connection.fetch(number, "(RFC822)")
                if status != "OK":
                    logger.warning("mailbox.fetch_failed", message_number=number.decode())
                    continue
                for part in parts:
                    if isinstance(part, tuple):
                        messages.append(part[1])
            return messages
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(str(exc)) from exc
        finally:
            try:
                connection.logout()
            except (imaplib.IMAP4.error, OSError):
                logger.debug("mailbox.logout_failed")


# ---------------------------------------------------------------------------
# SMTP mailer
# ---------------------------------------------------------------------------


class SmtpMailer:
    """Sends transactional email over SMTP.

    With no host configured the mailer only logs the message, which keeps
    local development free of SMTP credentials.
    """

    __slots__ = ("_host", "_password", "_port", "_sender", "_user")

    def __init__(
        self,
        host: str,
        *,
        port: int = 465,
        user: str = "",
        password: str = "",
        sender: str = "noreply@sudarshan.local",
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message["X-Auto-Generated"] = "Yes"
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        if not self._host:
            logger.info("mailer.mock_sent", to=to, subject=subject)
            return

        await asyncio.to_thread(self._send_sync, message)
        logger.info("mailer.sent", to=to, subject=subject)

    def _send_sync(self, message: EmailMessage) -> None:
        if self._port == 465:
            with smtplib.SMTP_SSL(self._host, self._port, timeout=15) as server:
                if self._user and self._password:
                    server.login(self._user, self._password)
                server.send_message(message)
            return

        with smtplib.SMTP(self._host, self._port, timeout=15) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            if self._user and self._password:
                server.login(self._user, self._password)
            server.send_message(message)
