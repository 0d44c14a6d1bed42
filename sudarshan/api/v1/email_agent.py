"""Manual trigger for the email intake agent."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/email-agent", tags=["email-agent"])


@router.post("/poll")
async def poll_inbox(request: Request) -> dict:
    """Run one polling cycle now and return its summary."""
    agent = getattr(request.app.state, "email_agent", None)
    if agent is None:
        raise HTTPException(status_code=503, detail="Email agent not configured")

    result = await agent.tick()
    return result.to_response()
