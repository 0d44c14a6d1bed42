"""Complaint intake and rejection, shared by every channel."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from sudarshan.models.complaint import Complaint, Coordinates
from sudarshan.models.enums import ComplaintSource, ComplaintStatus
from sudarshan.services.audit import CallPlacer
from sudarshan.services.normalizer import DEFAULT_COORDINATES, normalize_complaint
from sudarshan.services.notifications import NotificationDispatcher
from sudarshan.services.store import ComplaintNotFoundError, ComplaintStore
from sudarshan.services.telephony import TelephonyError, rejection_script

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class RejectionResult:
    success: bool
    call_id: str | None = None
    error: str | None = None

    def to_response(self) -> dict:
        body: dict[str, Any] = {"success": self.success}
        if self.call_id:
            body["callId"] = self.call_id
        if self.error:
            body["error"] = self.error
        return body


class ComplaintService:
    """Registers, lists, and rejects complaints.

    Parameters
    ----------
    store:
        Where complaints live.
    dispatcher:
        Sends the citizen confirmation after registration.
    telephony:
        Places the rejection-notice call.
    fallback_coordinates:
        Used when an inbound payload has no usable location fix.
    """

    __slots__ = ("_dispatcher", "_fallback", "_store", "_telephony")

    def __init__(
        self,
        store: ComplaintStore,
        dispatcher: NotificationDispatcher,
        telephony: CallPlacer,
        *,
        fallback_coordinates: Coordinates = DEFAULT_COORDINATES,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._telephony = telephony
        self._fallback = fallback_coordinates

    async def register(
        self,
        raw: Mapping[str, Any],
        source: ComplaintSource = ComplaintSource.WEB,
    ) -> Complaint:
        """Normalize *raw*, store it, and notify the citizen.

        Notification failures are absorbed; the complaint stays registered.
        """
        complaint = normalize_complaint(raw, source, fallback_coordinates=self._fallback)
        await self._store.insert(complaint)
        logger.info(
            "complaint.registered",
            complaint_id=complaint.id,
            source=source,
            department=complaint.department,
        )
        await self._dispatcher.notify(complaint)
        return complaint

    async def list_complaints(self) -> list[Complaint]:
        return await self._store.list_all()

    async def reject(self, complaint_id: str, reason: str) -> RejectionResult:
        """Call the citizen with the rejection notice, then mark the complaint.

        The status only changes once the call has been placed.

        Raises
        ------
        ComplaintNotFoundError
            If no complaint has *complaint_id*.
        """
        log = logger.bind(complaint_id=complaint_id)
        if await self._store.find_by_id(complaint_id) is None:
            raise ComplaintNotFoundError(complaint_id)

        try:
            call_id = await self._telephony.place_call(twiml=rejection_script(complaint_id, reason))
        except TelephonyError as exc:
            log.error("complaint.rejection_call_failed", error=str(exc))
            return RejectionResult(success=False, error=str(exc))

        def mark_rejected(complaint: Complaint) -> None:
            complaint.status = ComplaintStatus.REJECTED
            complaint.rejection_reason = reason

        await self._store.mutate(complaint_id, mark_rejected)
        log.info("complaint.rejected", call_id=call_id, reason=reason)
        return RejectionResult(success=True, call_id=call_id)
