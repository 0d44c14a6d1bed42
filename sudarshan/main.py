"""Sudarshan FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the backend services (complaint store,
notifications, evidence gate, telephony, audit correlator, email agent).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from config.settings import settings
from sudarshan.api.router import api_router
from sudarshan.models.complaint import Coordinates

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of all Sudarshan services.

    On startup:
      1. Validate Twilio credentials (fatal when missing or malformed)
      2. Complaint store
      3. Gemini client (optional)
      4. SMS, SMTP, and the notification dispatcher
      5. Complaint service and evidence gate
      6. Audit call correlator
      7. Email intake agent (when a mailbox is configured)

    On shutdown:
      - Stop the email intake agent.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, public_url=settings.public_url)

    app.state.start_time = time.time()
    app.state.settings = settings

    # -- 1. Telephony -------------------------------------------------------
    from sudarshan.services.telephony import TelephonyService, validate_telephony_credentials

    validate_telephony_credentials(settings)
    telephony = TelephonyService.from_settings(settings)
    app.state.telephony = telephony
    logger.info("app.telephony_initialised")

    # -- 2. Store -----------------------------------------------------------
    from sudarshan.services.store import InMemoryComplaintStore

    store = InMemoryComplaintStore()
    app.state.store = store

    # -- 3. LLM service (Gemini) --------------------------------------------
    from sudarshan.services.llm import LLMService

    llm: LLMService | None = None
    if settings.gemini_api_key or settings.gcp_project_id:
        llm = LLMService(
            api_key=settings.gemini_api_key,
            project_id=settings.gcp_project_id,
            region=settings.gcp_region,
            model_name=settings.gemini_model,
        )
        logger.info("app.llm_initialised", model=settings.gemini_model)
    else:
        logger.warning("app.llm_not_configured", note="evidence checks will fail open")
    app.state.llm = llm

    # -- 4. Notifications ---------------------------------------------------
    from sudarshan.services.mail import SmtpMailer
    from sudarshan.services.messaging import MessagingService, build_sms_provider
    from sudarshan.services.notifications import NotificationDispatcher

    messaging: MessagingService | None = None
    try:
        provider = build_sms_provider(
            settings.sms_provider,
            account_sid=settings.twilio_account_sid,
            auth_token=settings.twilio_auth_token,
            api_key=settings.sms_api_key,
        )
        messaging = MessagingService(
            provider,
            sender=settings.twilio_phone_number,
            provider_name=settings.sms_provider,
            default_country_code=settings.default_country_code,
        )
    except ValueError:
        logger.warning("app.messaging_init_failed", exc_info=True)
    app.state.messaging = messaging

    mailer = SmtpMailer(
        settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.mail_from,
    )
    dispatcher = NotificationDispatcher(messaging, mailer, settings.public_url)
    app.state.notifications = dispatcher

    # -- 5. Complaints and evidence -----------------------------------------
    from sudarshan.services.complaints import ComplaintService
    from sudarshan.services.evidence import EvidenceValidationGate, LocalBlobStorage

    complaints = ComplaintService(
        store,
        dispatcher,
        telephony,
        fallback_coordinates=Coordinates(lat=settings.fallback_lat, long=settings.fallback_long),
    )
    app.state.complaints = complaints
    app.state.evidence_gate = EvidenceValidationGate(
        store,
        LocalBlobStorage(settings.upload_dir, settings.public_url),
        classifier=llm,
    )
    logger.info("app.complaints_initialised")

    # -- 6. Audit calls -----------------------------------------------------
    from sudarshan.services.audit import AuditCallCorrelator

    app.state.audit = AuditCallCorrelator(telephony, settings.public_url)

    # -- 7. Email intake agent ----------------------------------------------
    from sudarshan.services.email_agent import EmailIntakeAgent
    from sudarshan.services.mail import ImapMailbox

    agent: EmailIntakeAgent | None = None
    if not settings.email_agent_enabled:
        logger.info("app.email_agent_disabled")
    elif not settings.email_agent_configured:
        logger.warning("app.email_agent_not_configured", note="EMAIL_USER / EMAIL_PASS missing")
    elif llm is None:
        logger.warning("app.email_agent_without_llm", note="extraction needs Gemini")
    else:
        mailbox = ImapMailbox(
            settings.imap_host,
            settings.email_user,
            settings.email_password,
            port=settings.imap_port,
            timeout=settings.email_auth_timeout_seconds,
        )
        agent = EmailIntakeAgent(
            mailbox,
            llm,
            complaints,
            interval_seconds=settings.email_poll_interval_seconds,
            initial_delay_seconds=settings.email_initial_delay_seconds,
        )
        agent.start_background_loop()
        logger.info("app.email_agent_started", mailbox=settings.email_user)
    app.state.email_agent = agent

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    if agent is not None:
        await agent.stop()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Sudarshan API",
    description=(
        "Delhi Sudarshan (दिल्ली सुदर्शन) -- civic grievance intake across web, "
        "voice, and email, with AI evidence screening and citizen verification calls."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# allow_credentials=True cannot be combined with a wildcard origin.
_origins = settings.cors_origin_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials="*" not in _origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Authorization"],
)

# -- Prometheus metrics -----------------------------------------------------
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/metrics", "/api/v1/health"],
).instrument(app).expose(
    app,
    endpoint="/metrics",
    include_in_schema=not settings.is_production,
)

# -- Include routers -------------------------------------------------------
app.include_router(api_router)

# -- Evidence uploads ------------------------------------------------------
_UPLOAD_DIR = Path(settings.upload_dir)
_UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(_UPLOAD_DIR)), name="uploads")


@app.get("/", include_in_schema=False)
async def root() -> dict:
    return {
        "name": "Sudarshan API",
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "complaints": "/api/v1/complaints",
            "evidence": "/api/v1/complaints/evidence",
            "reject": "/api/v1/complaints/reject",
            "audit": "/api/v1/audit/start",
            "token": "/api/v1/token",
            "email_agent": "/api/v1/email-agent/poll",
        },
    }
