"""Evidence validation gate for complaint photos.

A citizen uploads a photo for an existing complaint.  The gate:

1. Rejects the upload outright when the complaint does not exist or has
   already been rejected.
2. Stores the photo and derives its public URL from the complaint id and
   a millisecond timestamp, so uploads for different complaints never
   collide.  Each upload gets a fresh URL; the complaint keeps only the
   latest one.  A storage failure ends the submission with an error.
3. Asks Gemini whether the photo shows a civic issue.
4. Applies the decision policy:

   * ``ACCEPT``  -- attach the URL, set status ``Pending``, take the
     submitted GPS fix as the complaint's coordinates.
   * ``REJECT``  -- leave the complaint untouched and flag the upload as
     spam.  The citizen may upload again.
   * ``UNKNOWN`` or any provider error -- **fail open**: apply the same
     update as ``ACCEPT`` and return a warning.
"""

from __future__ import annotations

import asyncio
import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol

import structlog

from sudarshan.models.complaint import Complaint, Coordinates
from sudarshan.models.enums import ComplaintStatus, Verdict
from sudarshan.services.store import ComplaintNotFoundError, ComplaintStore

logger = structlog.get_logger(__name__)

AI_SKIPPED_WARNING: Final[str] = "AI Check Skipped"
NOT_FOUND_ERROR: Final[str] = "Complaint ID not found"
ALREADY_REJECTED_ERROR: Final[str] = "Complaint already rejected"
STORAGE_ERROR: Final[str] = "Evidence storage unavailable"

_ACCEPT_TOKEN: Final[str] = "VALID"
_REJECT_TOKEN: Final[str] = "INVALID"
_UNSAFE_NAME_CHARS: Final[re.Pattern[str]] = re.compile(r"[^A-Za-z0-9_-]")
_SAFE_SUFFIX: Final[re.Pattern[str]] = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class ImageClassifier(Protocol):
    async def classify_image(self, image_bytes: bytes, mime_type: str) -> str: ...


class BlobStorage(Protocol):
    async def save(self, name: str, data: bytes) -> str:
        """Persist *data* under *name* and return its public URL."""
        ...


class LocalBlobStorage:
    """Writes blobs to a local directory served under ``/uploads``."""

    __slots__ = ("_directory", "_public_base")

    def __init__(self, directory: str | Path, public_url: str) -> None:
        self._directory = Path(directory)
        self._public_base = f"{public_url.rstrip('/')}/uploads"

    @property
    def directory(self) -> Path:
        return self._directory

    async def save(self, name: str, data: bytes) -> str:
        await asyncio.to_thread(self._write, name, data)
        return f"{self._public_base}/{name}"

    def _write(self, name: str, data: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        root = self._directory.resolve()
        target = (root / name).resolve()
        if target.parent != root:
            raise ValueError(f"Blob name escapes the upload directory: {name!r}")
        target.write_bytes(data)


# ---------------------------------------------------------------------------
# Verdict parsing
# ---------------------------------------------------------------------------


def parse_verdict(text: str | None) -> Verdict:
    """Map arbitrary provider text onto a closed :class:`Verdict`.

    Matching is case-insensitive and substring based.  The reject token is
    checked first because ``"INVALID"`` contains ``"VALID"``.
    """
    if not text:
        return Verdict.UNKNOWN
    normalized = text.strip().upper()
    if _REJECT_TOKEN in normalized:
        return Verdict.REJECT
    if _ACCEPT_TOKEN in normalized:
        return Verdict.ACCEPT
    return Verdict.UNKNOWN


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class EvidenceResult:
    """Outcome of one evidence submission."""

    accepted: bool
    url: str | None = None
    spam_flag: bool = False
    warning: str | None = None
    error: str | None = None
    verdict: Verdict | None = None

    def to_response(self) -> dict:
        body: dict = {"success": self.accepted}
        if self.url is not None:
            body["url"] = self.url
        if self.spam_flag:
            body["spamFlag"] = True
        if self.warning:
            body["warning"] = self.warning
        if self.error:
            body["error"] = self.error
        return body


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class EvidenceValidationGate:
    """Screens evidence uploads and attaches accepted photos to complaints.

    Parameters
    ----------
    store:
        Complaint store holding the complaint being evidenced.
    storage:
        Blob storage for the uploaded photo.
    classifier:
        AI image classifier.  ``None`` means the provider is not
        configured, which is handled like a provider outage (fail open).
    """

    __slots__ = ("_classifier", "_storage", "_store")

    def __init__(
        self,
        store: ComplaintStore,
        storage: BlobStorage,
        classifier: ImageClassifier | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._classifier = classifier

    @staticmethod
    def build_blob_name(complaint_id: str, filename: str | None, mime_type: str) -> str:
        """``{complaint_id}-{epoch_ms}{ext}``, extension from filename or mime type.

        Path-unsafe characters in the id become ``_``; an unusual extension
        is replaced by the one guessed from the mime type.
        """
        stem = _UNSAFE_NAME_CHARS.sub("_", complaint_id) or "complaint"
        suffix = Path(filename).suffix if filename else ""
        if not _SAFE_SUFFIX.match(suffix):
            suffix = mimetypes.guess_extension(mime_type or "") or ".jpg"
        return f"{stem}-{int(time.time() * 1000)}{suffix.lower()}"

    async def submit_evidence(
        self,
        complaint_id: str,
        image_bytes: bytes,
        mime_type: str,
        gps: Coordinates | None = None,
        filename: str | None = None,
    ) -> EvidenceResult:
        log = logger.bind(complaint_id=complaint_id, mime_type=mime_type, size=len(image_bytes))

        complaint = await self._store.find_by_id(complaint_id)
        if complaint is None:
            log.warning("evidence.complaint_not_found")
            return EvidenceResult(accepted=False, error=NOT_FOUND_ERROR)
        if complaint.status == ComplaintStatus.REJECTED:
            log.warning("evidence.complaint_already_rejected")
            return EvidenceResult(accepted=False, error=ALREADY_REJECTED_ERROR)

        try:
            url = await self._storage.save(
                self.build_blob_name(complaint_id, filename, mime_type),
                image_bytes,
            )
        except Exception:
            log.error("evidence.storage_failed", exc_info=True)
            return EvidenceResult(accepted=False, error=STORAGE_ERROR)
        log = log.bind(url=url)

        if self._classifier is None:
            log.warning("evidence.ai_unavailable")
            return await self._accept(complaint_id, url, gps, log, warning=AI_SKIPPED_WARNING)

        try:
            log.info("evidence.ai_check_started")
            text = await self._classifier.classify_image(image_bytes, mime_type)
        except Exception:
            log.error("evidence.ai_check_failed", exc_info=True)
            return await self._accept(complaint_id, url, gps, log, warning=AI_SKIPPED_WARNING)

        verdict = parse_verdict(text)
        log.info("evidence.ai_verdict", raw=text, verdict=verdict.value)

        if verdict is Verdict.REJECT:
            log.info("evidence.blocked_as_spam")
            return EvidenceResult(accepted=False, spam_flag=True, verdict=verdict)

        warning = AI_SKIPPED_WARNING if verdict is Verdict.UNKNOWN else None
        return await self._accept(complaint_id, url, gps, log, warning=warning, verdict=verdict)

    async def _accept(
        self,
        complaint_id: str,
        url: str,
        gps: Coordinates | None,
        log: structlog.stdlib.BoundLogger,
        *,
        warning: str | None = None,
        verdict: Verdict | None = None,
    ) -> EvidenceResult:
        attached = False

        def attach(complaint: Complaint) -> None:
            nonlocal attached
            # Rejected while the AI check was running.
            if complaint.status == ComplaintStatus.REJECTED:
                return
            complaint.evidence_url = url
            complaint.status = ComplaintStatus.PENDING
            if gps is not None:
                complaint.coordinates = gps
            attached = True

        try:
            await self._store.mutate(complaint_id, attach)
        except ComplaintNotFoundError:
            log.warning("evidence.complaint_vanished")
            return EvidenceResult(accepted=False, error=NOT_FOUND_ERROR)
        if not attached:
            log.warning("evidence.complaint_already_rejected")
            return EvidenceResult(accepted=False, error=ALREADY_REJECTED_ERROR)

        if warning:
            log.warning("evidence.accepted_without_ai_check", warning=warning)
        else:
            log.info("evidence.accepted")
        return EvidenceResult(accepted=True, url=url, warning=warning, verdict=verdict)
