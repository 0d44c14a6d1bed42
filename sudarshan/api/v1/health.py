"""Health check endpoints.

``/health`` is a liveness probe; ``/health/ready`` reports which optional
collaborators (Gemini, email agent) were configured at startup.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Component readiness.

    The complaint store and telephony are required; AI and the email agent
    are optional and reported as ``disabled`` when absent.
    """
    state = request.app.state
    checks: dict[str, str] = {
        "store": "ok" if getattr(state, "store", None) is not None else "unavailable",
        "telephony": "ok" if getattr(state, "telephony", None) is not None else "unavailable",
        "llm": "ok" if getattr(state, "llm", None) is not None else "disabled",
    }

    agent = getattr(state, "email_agent", None)
    if agent is None:
        checks["email_agent"] = "disabled"
    elif agent.last_cycle is not None and agent.last_cycle.connection_failed:
        checks["email_agent"] = "mailbox_unreachable"
    else:
        checks["email_agent"] = "running" if agent.is_running else "idle"

    ready = checks["store"] == "ok" and checks["telephony"] == "ok"
    if not ready:
        logger.warning("health.not_ready", checks=checks)
    return ReadinessResponse(status="ready" if ready else "degraded", checks=checks)
