"""Normalization of inbound complaint payloads into canonical records.

Every channel (web form, voice assistant, email agent) hands the
normalizer a loosely-shaped mapping.  The normalizer fills whatever is
missing -- identifier, status, registration date, coordinates, and
department -- and always produces a complete :class:`Complaint`.  It does
not validate phone numbers; that happens only when an SMS is dispatched.
"""

from __future__ import annotations

import random
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any, Final

import structlog

from sudarshan.models.complaint import Complaint, Coordinates
from sudarshan.models.enums import ComplaintSource, ComplaintStatus
from sudarshan.services.classifier import classify_department

logger = structlog.get_logger(__name__)

DEFAULT_COORDINATES: Final[Coordinates] = Coordinates(lat=28.6139, long=77.2090)

AUTO_ASSIGNED: Final[str] = "Auto-Assigned"

_ID_PREFIXES: Final[dict[ComplaintSource, str]] = {
    ComplaintSource.WEB: "SIGW",
    ComplaintSource.VOICE: "VAANI",
    ComplaintSource.EMAIL: "MAIL",
}

# Keys accepted for each canonical field, in lookup order.
_FIELD_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "description": ("description", "desc"),
    "location": ("location", "loc"),
    "department": ("department", "dept"),
    "evidence_url": ("evidence_url", "evidenceUrl", "img"),
}


def generate_complaint_id(source: ComplaintSource) -> str:
    """Build ``"{prefix}-{4 digits}"`` for *source*.

    Uniqueness is best effort: two calls can return the same identifier.
    """
    prefix = _ID_PREFIXES.get(source, "SIGW")
    return f"{prefix}-{random.randint(1000, 9999)}"


def _lookup(raw: Mapping[str, Any], field: str) -> Any:
    for key in _FIELD_ALIASES.get(field, (field,)):
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value)


def _coerce_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _resolve_coordinates(raw: Mapping[str, Any], fallback: Coordinates) -> Coordinates:
    nested = raw.get("coordinates")
    if isinstance(nested, Coordinates):
        return nested
    if isinstance(nested, Mapping):
        lat, long = _coerce_float(nested.get("lat")), _coerce_float(nested.get("long"))
    else:
        lat, long = _coerce_float(raw.get("lat")), _coerce_float(raw.get("long"))

    if lat is None or long is None:
        return fallback
    return Coordinates(lat=lat, long=long)


def _resolve_date(value: Any, today: date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.warning("normalizer.unparseable_date", value=value)
    return today


def is_placeholder_department(department: str) -> bool:
    cleaned = department.strip()
    return not cleaned or cleaned.casefold() == AUTO_ASSIGNED.casefold()


def normalize_complaint(
    raw: Mapping[str, Any],
    source: ComplaintSource = ComplaintSource.WEB,
    *,
    fallback_coordinates: Coordinates = DEFAULT_COORDINATES,
    today: date | None = None,
) -> Complaint:
    """Fill the gaps in *raw* and return a complete :class:`Complaint`.

    Parameters
    ----------
    raw:
        Partial complaint payload.  Short dashboard keys (``desc``,
        ``loc``, ``dept``, ``img``) are accepted alongside the canonical
        names; unknown keys are ignored.
    source:
        Channel the complaint arrived through.  Selects the identifier
        prefix when an identifier has to be synthesized.
    fallback_coordinates:
        Point used when the payload carries no usable coordinates.
    today:
        Registration date override; defaults to the current UTC date.
    """
    today = today or datetime.now(UTC).date()

    complaint_id = _text(raw.get("id")) or generate_complaint_id(source)
    complaint_type = _text(raw.get("type"))
    subject = _text(raw.get("subject"))
    description = _text(_lookup(raw, "description"))

    department = _text(_lookup(raw, "department"))
    if is_placeholder_department(department):
        department = classify_department(complaint_type, subject, description)

    email = _text(raw.get("email")) or None

    complaint = Complaint(
        id=complaint_id,
        type=complaint_type,
        description=description,
        location=_text(_lookup(raw, "location")),
        status=_text(raw.get("status")) or ComplaintStatus.PENDING,
        date=_resolve_date(raw.get("date"), today),
        phone=_text(raw.get("phone")),
        department=department,
        coordinates=_resolve_coordinates(raw, fallback_coordinates),
        evidence_url=_text(_lookup(raw, "evidence_url")),
        email=email,
        name=_text(raw.get("name")),
        subject=subject,
        source=source,
    )

    logger.debug(
        "normalizer.complaint_normalized",
        complaint_id=complaint.id,
        source=source.value,
        department=complaint.department,
    )
    return complaint
