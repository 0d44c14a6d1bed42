"""Tests for the evidence validation gate.

Covers verdict parsing, the accept / reject / fail-open policy, GPS
overwrite, rejected complaints, storage failures, and blob naming.
"""

from __future__ import annotations

import pytest

from sudarshan.models.complaint import Coordinates
from sudarshan.models.enums import ComplaintStatus, Verdict
from sudarshan.services.evidence import (
    AI_SKIPPED_WARNING,
    ALREADY_REJECTED_ERROR,
    NOT_FOUND_ERROR,
    STORAGE_ERROR,
    EvidenceValidationGate,
    LocalBlobStorage,
    parse_verdict,
)

PHOTO = b"\xff\xd8\xff\xe0fake-jpeg"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def seeded_store(store, make_complaint):
    await store.insert(make_complaint("SIGW-1001", status="In Progress"))
    await store.insert(make_complaint("SIGW-1002"))
    await store.insert(make_complaint("SIGW-1003", status=ComplaintStatus.REJECTED))
    return store


@pytest.fixture
def gate(seeded_store, fake_storage, fake_classifier) -> EvidenceValidationGate:
    return EvidenceValidationGate(seeded_store, fake_storage, fake_classifier)


# ---------------------------------------------------------------------------
# parse_verdict
# ---------------------------------------------------------------------------


class TestParseVerdict:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("VALID", Verdict.ACCEPT),
            ("valid", Verdict.ACCEPT),
            ("The image is VALID.", Verdict.ACCEPT),
            ("INVALID", Verdict.REJECT),
            ("invalid - this is a selfie", Verdict.REJECT),
            ("I am not sure", Verdict.UNKNOWN),
            ("", Verdict.UNKNOWN),
            (None, Verdict.UNKNOWN),
        ],
    )
    def test_parse_verdict(self, text, expected) -> None:
        assert parse_verdict(text) is expected


# ---------------------------------------------------------------------------
# Gate policy
# ---------------------------------------------------------------------------


class TestAccept:
    async def test_attaches_url_and_resets_status(self, gate, seeded_store) -> None:
        result = await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg")

        assert result.accepted
        assert result.warning is None
        complaint = await seeded_store.find_by_id("SIGW-1001")
        assert complaint.evidence_url == result.url
        assert complaint.status == ComplaintStatus.PENDING
        assert result.to_response() == {"success": True, "url": result.url}

    async def test_overwrites_coordinates_with_gps(self, gate, seeded_store) -> None:
        gps = Coordinates(lat=28.61, long=77.23)

        await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg", gps=gps)

        assert (await seeded_store.find_by_id("SIGW-1001")).coordinates == gps

    async def test_each_upload_gets_a_distinct_url(self, gate) -> None:
        first = await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg", filename="a.jpg")
        other = await gate.submit_evidence("SIGW-1002", PHOTO, "image/jpeg", filename="a.jpg")

        assert first.url != other.url
        assert "SIGW-1001" in first.url
        assert "SIGW-1002" in other.url


class TestRejectAsSpam:
    async def test_leaves_complaint_untouched(self, gate, seeded_store, fake_classifier) -> None:
        fake_classifier.answer = "INVALID"
        before = (await seeded_store.find_by_id("SIGW-1001")).model_copy()

        result = await gate.submit_evidence(
            "SIGW-1001", PHOTO, "image/jpeg", gps=Coordinates(lat=1.0, long=2.0)
        )

        assert not result.accepted
        assert result.spam_flag
        assert result.to_response() == {"success": False, "spamFlag": True}
        assert await seeded_store.find_by_id("SIGW-1001") == before


class TestFailOpen:
    async def test_classifier_error(self, gate, seeded_store, fake_classifier) -> None:
        fake_classifier.answer = TimeoutError("deadline")

        result = await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg")

        assert result.accepted
        assert result.warning == AI_SKIPPED_WARNING
        assert (await seeded_store.find_by_id("SIGW-1001")).evidence_url == result.url

    async def test_missing_classifier(self, seeded_store, fake_storage) -> None:
        gate = EvidenceValidationGate(seeded_store, fake_storage, classifier=None)
        gps = Coordinates(lat=28.7, long=77.1)

        result = await gate.submit_evidence("SIGW-1002", PHOTO, "image/png", gps=gps)

        assert result.accepted
        assert result.warning == AI_SKIPPED_WARNING
        complaint = await seeded_store.find_by_id("SIGW-1002")
        assert complaint.coordinates == gps
        assert complaint.evidence_url == result.url

    async def test_ambiguous_verdict(self, gate, fake_classifier) -> None:
        fake_classifier.answer = "Cannot determine"

        result = await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg")

        assert result.accepted
        assert result.warning == AI_SKIPPED_WARNING
        assert result.verdict is Verdict.UNKNOWN


class TestRefusedUploads:
    async def test_unknown_complaint_stores_nothing(self, gate, fake_storage, fake_classifier) -> None:
        result = await gate.submit_evidence("SIGW-9999", PHOTO, "image/jpeg")

        assert not result.accepted
        assert result.error == NOT_FOUND_ERROR
        assert fake_storage.saved == {}
        assert fake_classifier.calls == 0

    async def test_rejected_complaint_stays_rejected(self, gate, seeded_store, fake_storage) -> None:
        result = await gate.submit_evidence("SIGW-1003", PHOTO, "image/jpeg")

        assert not result.accepted
        assert result.error == ALREADY_REJECTED_ERROR
        assert fake_storage.saved == {}
        complaint = await seeded_store.find_by_id("SIGW-1003")
        assert complaint.status == ComplaintStatus.REJECTED
        assert complaint.evidence_url == ""

    async def test_rejection_during_ai_check_is_kept(self, seeded_store, fake_storage) -> None:
        class RejectsMidCheck:
            async def classify_image(self, image_bytes: bytes, mime_type: str) -> str:
                def reject(complaint):
                    complaint.status = ComplaintStatus.REJECTED

                await seeded_store.mutate("SIGW-1002", reject)
                return "VALID"

        gate = EvidenceValidationGate(seeded_store, fake_storage, RejectsMidCheck())

        result = await gate.submit_evidence("SIGW-1002", PHOTO, "image/jpeg")

        assert result.error == ALREADY_REJECTED_ERROR
        complaint = await seeded_store.find_by_id("SIGW-1002")
        assert complaint.status == ComplaintStatus.REJECTED
        assert complaint.evidence_url == ""

    async def test_storage_failure_is_reported(self, gate, seeded_store, fake_storage, fake_classifier) -> None:
        fake_storage.fail = True

        result = await gate.submit_evidence("SIGW-1001", PHOTO, "image/jpeg")

        assert not result.accepted
        assert result.to_response() == {"success": False, "error": STORAGE_ERROR}
        assert fake_classifier.calls == 0
        assert (await seeded_store.find_by_id("SIGW-1001")).evidence_url == ""


# ---------------------------------------------------------------------------
# Blob naming and local storage
# ---------------------------------------------------------------------------


class TestBlobNames:
    def test_uses_filename_or_mime_extension(self) -> None:
        from_filename = EvidenceValidationGate.build_blob_name("SIGW-1", "photo.PNG", "image/jpeg")
        from_mime = EvidenceValidationGate.build_blob_name("SIGW-1", None, "image/png")

        assert from_filename.startswith("SIGW-1-") and from_filename.endswith(".png")
        assert from_mime.endswith(".png")

    def test_path_characters_in_id_are_replaced(self) -> None:
        name = EvidenceValidationGate.build_blob_name("../../escaped", "x.jpg", "image/jpeg")

        assert "/" not in name
        assert ".." not in name
        assert name.startswith("______escaped-")

    def test_odd_filename_suffix_falls_back_to_mime(self) -> None:
        name = EvidenceValidationGate.build_blob_name("SIGW-1", "x.jpg/../../y", "image/png")
        assert "/" not in name
        assert name.endswith(".png")


class TestLocalBlobStorage:
    async def test_writes_file(self, tmp_path) -> None:
        storage = LocalBlobStorage(tmp_path / "uploads", "https://sudarshan.example/")

        url = await storage.save("SIGW-1-1700000000000.jpg", PHOTO)

        assert url == "https://sudarshan.example/uploads/SIGW-1-1700000000000.jpg"
        assert (tmp_path / "uploads" / "SIGW-1-1700000000000.jpg").read_bytes() == PHOTO

    async def test_refuses_names_outside_the_directory(self, tmp_path) -> None:
        storage = LocalBlobStorage(tmp_path / "a" / "uploads", "https://sudarshan.example")

        with pytest.raises(ValueError):
            await storage.save("../../escaped-1.jpg", PHOTO)

        assert not (tmp_path / "escaped-1.jpg").exists()

    async def test_gate_keeps_hostile_ids_inside_the_directory(self, tmp_path, store, make_complaint) -> None:
        upload_dir = tmp_path / "a" / "uploads"
        await store.insert(make_complaint("../../escaped"))
        gate = EvidenceValidationGate(store, LocalBlobStorage(upload_dir, "https://x"), classifier=None)

        result = await gate.submit_evidence("../../escaped", PHOTO, "image/jpeg", filename="p.jpg")

        assert result.accepted
        assert "/uploads/______escaped-" in result.url
        (written,) = list(upload_dir.iterdir())
        assert written.name.startswith("______escaped-")
        assert list(tmp_path.glob("escaped*")) == []
