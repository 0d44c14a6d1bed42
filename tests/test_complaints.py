"""Tests for complaint registration and rejection."""

from __future__ import annotations

import pytest

from sudarshan.models.complaint import Coordinates
from sudarshan.models.enums import ComplaintSource, ComplaintStatus, Department
from sudarshan.services.complaints import ComplaintService
from sudarshan.services.notifications import NotificationDispatcher
from sudarshan.services.store import ComplaintNotFoundError


@pytest.fixture
def service(store, fake_messaging, fake_telephony) -> ComplaintService:
    dispatcher = NotificationDispatcher(fake_messaging, None, "https://sudarshan.example")
    return ComplaintService(
        store,
        dispatcher,
        fake_telephony,
        fallback_coordinates=Coordinates(lat=28.0, long=77.0),
    )


class TestRegister:
    async def test_normalizes_stores_and_notifies(self, service, store, fake_messaging) -> None:
        complaint = await service.register(
            {"type": "Garbage", "desc": "Overflowing bin", "phone": "9876543210"},
            ComplaintSource.VOICE,
        )

        assert complaint.id.startswith("VAANI-")
        assert complaint.department == Department.MUNICIPAL
        assert complaint.coordinates == Coordinates(lat=28.0, long=77.0)
        assert await store.find_by_id(complaint.id) is complaint
        assert len(fake_messaging.sent) == 1

    async def test_survives_notification_failure(self, service, store, fake_messaging) -> None:
        fake_messaging.fail = True

        complaint = await service.register({"type": "Pothole", "phone": "9876543210"})

        assert await store.find_by_id(complaint.id) is not None

    async def test_list_complaints_is_newest_first(self, service) -> None:
        first = await service.register({"id": "SIGW-1"})
        second = await service.register({"id": "SIGW-2"})

        assert [c.id for c in await service.list_complaints()] == [second.id, first.id]


class TestReject:
    async def test_calls_citizen_then_marks_complaint(self, service, store, fake_telephony) -> None:
        await service.register({"id": "SIGW-4321", "type": "Pothole"})

        result = await service.reject("SIGW-4321", "Duplicate complaint")

        assert result.success
        assert result.call_id
        (call,) = fake_telephony.calls
        assert "S I G W - 4 3 2 1" in call["twiml"]
        assert "Duplicate complaint" in call["twiml"]

        complaint = await store.find_by_id("SIGW-4321")
        assert complaint.status == ComplaintStatus.REJECTED
        assert complaint.rejection_reason == "Duplicate complaint"
        assert result.to_response() == {"success": True, "callId": result.call_id}

    async def test_unknown_id_raises(self, service, fake_telephony) -> None:
        with pytest.raises(ComplaintNotFoundError):
            await service.reject("SIGW-0000", "spam")
        assert fake_telephony.calls == []

    async def test_call_failure_keeps_status(self, service, store, fake_telephony) -> None:
        fake_telephony.fail = True
        await service.register({"id": "SIGW-5555"})

        result = await service.reject("SIGW-5555", "Out of jurisdiction")

        assert not result.success
        assert result.error
        complaint = await store.find_by_id("SIGW-5555")
        assert complaint.status == ComplaintStatus.PENDING
        assert complaint.rejection_reason is None
