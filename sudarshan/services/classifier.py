"""Keyword-based department routing for incoming complaints.

Routes a complaint to the department responsible for it by scanning the
combined type, subject, and description text against fixed keyword sets.
The sets are checked in a fixed priority order and the first set with
any substring hit wins, so a complaint mentioning both a pothole and a
sparking power line goes to the electricity department.

The function is pure and total: any input, including empty strings and
``None``, yields a department.
"""

from __future__ import annotations

from typing import Final

from sudarshan.models.enums import Department

# Priority order matters: earlier entries win on overlapping text.
_DEPARTMENT_KEYWORDS: Final[tuple[tuple[Department, tuple[str, ...]], ...]] = (
    (
        Department.POWER,
        (
            "electric",
            "electricity",
            "power cut",
            "power outage",
            "power supply",
            "no power",
            "powerline",
            "power line",
            "transformer",
            "voltage",
            "live wire",
            "short circuit",
            "bijli",
        ),
    ),
    (
        Department.MUNICIPAL,
        (
            "garbage",
            "trash",
            "waste",
            "dump",
            "litter",
            "sewer",
            "sewage",
            "drain",
            "manhole",
            "stray",
            "dog",
            "cattle",
            "cow",
            "dead animal",
            "kachra",
        ),
    ),
    (
        Department.ROADS,
        (
            "pothole",
            "road",
            "footpath",
            "pavement",
            "bridge",
            "flyover",
            "construction debris",
            "speed breaker",
            "divider",
            "traffic signal",
            "sadak",
        ),
    ),
    (
        Department.WATER,
        (
            "water",
            "leak",
            "pipeline",
            "tap",
            "supply",
            "contaminated",
            "tanker",
            "paani",
        ),
    ),
    (
        Department.STREET_LIGHTING,
        (
            "street light",
            "streetlight",
            "lamp",
            "lamp post",
            "dark street",
            "light not working",
        ),
    ),
)


def classify_department(
    complaint_type: str | None,
    subject: str | None = "",
    description: str | None = "",
) -> Department:
    """Return the department responsible for a complaint.

    Parameters
    ----------
    complaint_type:
        Free-text category, e.g. ``"Pothole"``.
    subject:
        Email subject line, when the complaint arrived by email.
    description:
        Free-text description of the problem.
    """
    text = " ".join(part or "" for part in (complaint_type, subject, description)).casefold()
    if not text.strip():
        return Department.GENERAL

    for department, keywords in _DEPARTMENT_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return department

    return Department.GENERAL
