"""Main API router combining all v1 route modules under ``/api/v1``."""

from __future__ import annotations

from fastapi import APIRouter

from sudarshan.api.v1 import audit, complaints, email_agent, health

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(complaints.router)
api_router.include_router(audit.router)
api_router.include_router(email_agent.router)
api_router.include_router(health.router)
