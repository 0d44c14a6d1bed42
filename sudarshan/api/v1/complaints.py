"""Complaint API endpoints.

Registration from the web form and the voice assistant, the officials'
listing, evidence upload, and rejection.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import ORJSONResponse

from sudarshan.models.complaint import Complaint, ComplaintCreateRequest, Coordinates, RejectComplaintRequest
from sudarshan.services.complaints import ComplaintService
from sudarshan.services.evidence import (
    ALREADY_REJECTED_ERROR,
    NOT_FOUND_ERROR,
    STORAGE_ERROR,
    EvidenceValidationGate,
)
from sudarshan.services.store import ComplaintNotFoundError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


def _complaint_service(request: Request) -> ComplaintService:
    service = getattr(request.app.state, "complaints", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Complaint service not available")
    return service


def _parse_gps(lat: str | None, long: str | None) -> Coordinates | None:
    if not lat or not long:
        return None
    try:
        return Coordinates(lat=float(lat), long=float(long))
    except ValueError:
        logger.warning("api.complaints.bad_gps", lat=lat, long=long)
        return None


@router.post("")
async def create_complaint(body: ComplaintCreateRequest, request: Request) -> dict:
    """Register a complaint from the web form or the voice assistant."""
    service = _complaint_service(request)
    raw = body.model_dump(exclude_none=True, exclude={"source"})
    complaint = await service.register(raw, body.source)
    return {"success": True, "id": complaint.id}


@router.get("", response_model=list[Complaint])
async def list_complaints(request: Request) -> list[Complaint]:
    """All complaints, newest first."""
    return await _complaint_service(request).list_complaints()


@router.post("/evidence")
async def submit_evidence(
    request: Request,
    id: str = Form(..., min_length=1, max_length=64),
    photo: UploadFile = File(...),
    lat: str | None = Form(default=None),
    long: str | None = Form(default=None),
):
    """Upload a photo for an existing complaint and run the AI check."""
    gate: EvidenceValidationGate | None = getattr(request.app.state, "evidence_gate", None)
    if gate is None:
        raise HTTPException(status_code=503, detail="Evidence service not available")

    image_bytes = await photo.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Empty photo upload")

    result = await gate.submit_evidence(
        id,
        image_bytes,
        photo.content_type or "image/jpeg",
        gps=_parse_gps(lat, long),
        filename=photo.filename,
    )
    if result.error == NOT_FOUND_ERROR:
        return ORJSONResponse(status_code=404, content=result.to_response())
    if result.error == ALREADY_REJECTED_ERROR:
        return ORJSONResponse(status_code=409, content=result.to_response())
    if result.error == STORAGE_ERROR:
        return ORJSONResponse(status_code=503, content=result.to_response())
    return result.to_response()


@router.post("/reject")
async def reject_complaint(body: RejectComplaintRequest, request: Request):
    """Phone the citizen with the rejection reason and mark the complaint."""
    service = _complaint_service(request)
    try:
        result = await service.reject(body.id, body.reason)
    except ComplaintNotFoundError:
        return ORJSONResponse(
            status_code=404,
            content={"success": False, "error": "Complaint not found"},
        )

    if not result.success:
        return ORJSONResponse(status_code=502, content=result.to_response())
    return result.to_response()
