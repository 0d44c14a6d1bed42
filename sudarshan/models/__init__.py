from sudarshan.models.complaint import (
    Complaint,
    ComplaintCreateRequest,
    Coordinates,
    RejectComplaintRequest,
)
from sudarshan.models.enums import (
    ComplaintSource,
    ComplaintStatus,
    Department,
    Verdict,
)

__all__ = [
    "Complaint",
    "ComplaintCreateRequest",
    "ComplaintSource",
    "ComplaintStatus",
    "Coordinates",
    "Department",
    "RejectComplaintRequest",
    "Verdict",
]
