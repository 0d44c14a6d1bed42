"""Complaint store: the ordered collection behind the dashboard.

The store keeps complaints most-recent-first; that order is the
dashboard's implicit sort.  All reads and writes go through one
:class:`asyncio.Lock`, so the email agent's background task and the
request handlers can insert concurrently without dropping records or
reordering them.  Concurrent mutations of the same complaint are
last-write-wins.

Core logic depends only on the :class:`ComplaintStore` protocol, so a
persistent backend can replace :class:`InMemoryComplaintStore` without
touching the services.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

import structlog

from sudarshan.models.complaint import Complaint

logger = structlog.get_logger(__name__)


class ComplaintNotFoundError(LookupError):
    """Raised when no complaint carries the requested identifier."""

    def __init__(self, complaint_id: str) -> None:
        super().__init__(f"Complaint {complaint_id!r} not found")
        self.complaint_id = complaint_id


class ComplaintStore(Protocol):
    async def insert(self, complaint: Complaint) -> None: ...

    async def find_by_id(self, complaint_id: str) -> Complaint | None: ...

    async def mutate(
        self,
        complaint_id: str,
        updater: Callable[[Complaint], None],
    ) -> Complaint: ...

    async def list_all(self) -> list[Complaint]: ...


class InMemoryComplaintStore:
    """Process-local :class:`ComplaintStore` backed by a list.

    Lookups are linear scans and identifiers are not checked for
    uniqueness; when two records share an identifier the newest wins.
    """

    __slots__ = ("_complaints", "_lock")

    def __init__(self) -> None:
        self._complaints: list[Complaint] = []
        self._lock = asyncio.Lock()

    async def insert(self, complaint: Complaint) -> None:
        async with self._lock:
            self._complaints.insert(0, complaint)
            total = len(self._complaints)
        logger.info(
            "store.complaint_inserted",
            complaint_id=complaint.id,
            source=complaint.source,
            total=total,
        )

    async def find_by_id(self, complaint_id: str) -> Complaint | None:
        async with self._lock:
            return self._find(complaint_id)

    async def mutate(
        self,
        complaint_id: str,
        updater: Callable[[Complaint], None],
    ) -> Complaint:
        """Apply *updater* to the matching complaint in place.

        Raises
        ------
        ComplaintNotFoundError
            If no complaint carries *complaint_id*.  Nothing is changed.
        """
        async with self._lock:
            complaint = self._find(complaint_id)
            if complaint is None:
                raise ComplaintNotFoundError(complaint_id)
            updater(complaint)
            return complaint

    async def list_all(self) -> list[Complaint]:
        async with self._lock:
            return list(self._complaints)

    def __len__(self) -> int:
        return len(self._complaints)

    def _find(self, complaint_id: str) -> Complaint | None:
        for complaint in self._complaints:
            if complaint.id == complaint_id:
                return complaint
        return None
