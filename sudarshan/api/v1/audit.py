"""Surprise-audit calls, their IVR webhooks, and browser calling tokens.

The prompt and result routes are called by Twilio, not by the dashboard,
and answer with TwiML.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import ORJSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sudarshan.services.audit import AuditCallCorrelator
from sudarshan.services.telephony import (
    TelephonyError,
    TelephonyService,
    audit_prompt_script,
    audit_thanks_script,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["audit"])

_TWIML_MEDIA_TYPE = "application/xml"


class AuditStartRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: str = Field(..., min_length=1, max_length=500, validation_alias=AliasChoices("location", "loc"))
    department: str = Field(..., min_length=1, max_length=200, validation_alias=AliasChoices("department", "dept"))
    count: int = Field(default=0, ge=0)


def _correlator(request: Request) -> AuditCallCorrelator:
    correlator = getattr(request.app.state, "audit", None)
    if correlator is None:
        raise HTTPException(status_code=503, detail="Audit service not available")
    return correlator


def _twiml(body: str) -> Response:
    return Response(content=body, media_type=_TWIML_MEDIA_TYPE)


def _first_present(payload: dict, *keys: str):
    """Value of the first key that is present and not null, falsy values included."""
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


# ---------------------------------------------------------------------------
# Dashboard endpoints
# ---------------------------------------------------------------------------


@router.post("/audit/start")
async def start_audit(body: AuditStartRequest, request: Request):
    """Ring a resident to verify a department's resolution claim."""
    correlator = _correlator(request)
    try:
        call_id = await correlator.start_audit(body.location, body.department, body.count)
    except TelephonyError as exc:
        return ORJSONResponse(status_code=502, content={"success": False, "error": str(exc)})
    return {"success": True, "callId": call_id}


@router.get("/audit/status/{call_id}")
async def audit_status(call_id: str, request: Request) -> dict:
    status = await _correlator(request).check_status(call_id)
    return {"callId": call_id, "status": status}


@router.get("/token")
async def browser_token(request: Request) -> dict:
    """Access token for the citizen's browser phone."""
    telephony: TelephonyService | None = getattr(request.app.state, "telephony", None)
    if telephony is None:
        raise HTTPException(status_code=503, detail="Telephony not available")

    settings = request.app.state.settings
    identity = settings.citizen_client_identity
    token = telephony.issue_browser_token(identity, settings.browser_token_ttl_seconds)
    return {"token": token, "identity": identity}


# ---------------------------------------------------------------------------
# Twilio webhooks
# ---------------------------------------------------------------------------


@router.api_route("/audit/prompt", methods=["GET", "POST"], include_in_schema=False)
async def audit_prompt(
    request: Request,
    dept: str = "the concerned",
    loc: str = "your area",
    count: str = "several",
) -> Response:
    correlator = _correlator(request)
    return _twiml(audit_prompt_script(dept, loc, count, correlator.result_url))


@router.post("/audit/result", include_in_schema=False)
async def audit_result(request: Request) -> Response:
    """Record the pressed digit.  Accepts Twilio form posts or JSON."""
    correlator = _correlator(request)

    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body") from None
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")
        call_id = _first_present(payload, "callId", "CallSid")
        digit = _first_present(payload, "digit", "Digits")
    else:
        form = await request.form()
        call_id = form.get("CallSid")
        digit = form.get("Digits")

    if not call_id:
        logger.warning("api.audit.result_without_call_id")
        raise HTTPException(status_code=400, detail="CallSid is required")

    digit = str(digit) if digit is not None else None
    await correlator.record_result(str(call_id), digit)
    return _twiml(audit_thanks_script(digit))
