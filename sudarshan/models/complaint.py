"""Complaint models shared by every intake channel.

A :class:`Complaint` is the canonical record produced by the normalizer
regardless of whether the grievance arrived through the web form, the
voice assistant, or the email agent.  Records are mutated in place by the
evidence gate and the rejection flow, and are never deleted.
"""

from __future__ import annotations

import datetime as dt

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sudarshan.models.enums import ComplaintSource, ComplaintStatus

# Ids end up in upload file names.
COMPLAINT_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class Coordinates(BaseModel):
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    long: float


class Complaint(BaseModel):
    """A single citizen grievance."""

    model_config = {"frozen": False}

    id: str
    type: str = ""
    description: str = ""
    location: str = ""
    status: str = ComplaintStatus.PENDING
    date: dt.date
    phone: str = ""
    department: str
    coordinates: Coordinates
    evidence_url: str = ""
    email: str | None = None
    name: str = ""
    subject: str = ""
    source: ComplaintSource = ComplaintSource.WEB
    rejection_reason: str | None = None


class ComplaintCreateRequest(BaseModel):
    """Inbound complaint payload from the web form or the voice assistant.

    Every field is optional; the normalizer fills the gaps.  The short keys
    used by the dashboard and the voice assistant (``desc``, ``loc``,
    ``dept``, ``img``) are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = Field(default=None, max_length=64, pattern=COMPLAINT_ID_PATTERN)
    type: str | None = Field(default=None, max_length=200)
    description: str | None = Field(
        default=None,
        max_length=5000,
        validation_alias=AliasChoices("description", "desc"),
    )
    location: str | None = Field(
        default=None,
        max_length=500,
        validation_alias=AliasChoices("location", "loc"),
    )
    department: str | None = Field(
        default=None,
        max_length=200,
        validation_alias=AliasChoices("department", "dept"),
    )
    status: str | None = None
    date: str | None = None
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=320)
    name: str | None = Field(default=None, max_length=200)
    subject: str | None = Field(default=None, max_length=500)
    lat: float | str | None = None
    long: float | str | None = None
    coordinates: Coordinates | None = None
    evidence_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("evidence_url", "evidenceUrl", "img"),
    )
    source: ComplaintSource = ComplaintSource.WEB


class RejectComplaintRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=COMPLAINT_ID_PATTERN)
    reason: str = Field(..., min_length=1, max_length=500)
