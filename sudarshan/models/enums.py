from __future__ import annotations

from enum import StrEnum


class ComplaintSource(StrEnum):
    __slots__ = ()

    WEB = "web"
    VOICE = "voice"
    EMAIL = "email"


class ComplaintStatus(StrEnum):
    __slots__ = ()

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


class Department(StrEnum):
    __slots__ = ()

    POWER = "Power / Electricity Dept"
    MUNICIPAL = "Municipal Corporation (MCD)"
    ROADS = "PWD - Roads & Infrastructure"
    WATER = "Delhi Jal Board (Water Supply)"
    STREET_LIGHTING = "Street Lighting Dept"
    GENERAL = "General Admin"


class Verdict(StrEnum):
    __slots__ = ()

    ACCEPT = "accept"
    REJECT = "reject"
    UNKNOWN = "unknown"
