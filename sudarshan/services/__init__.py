"""Sudarshan service layer -- intake, evidence screening, notifications,
telephony, audits, and the email agent.
"""

from __future__ import annotations

from sudarshan.services.audit import AuditCall, AuditCallCorrelator
from sudarshan.services.classifier import classify_department
from sudarshan.services.complaints import ComplaintService, RejectionResult
from sudarshan.services.email_agent import EmailIntakeAgent, IntakeCycleResult
from sudarshan.services.evidence import EvidenceResult, EvidenceValidationGate, LocalBlobStorage
from sudarshan.services.llm import LLMService
from sudarshan.services.mail import ImapMailbox, SmtpMailer
from sudarshan.services.messaging import MessagingService, build_sms_provider
from sudarshan.services.normalizer import normalize_complaint
from sudarshan.services.notifications import NotificationDispatcher
from sudarshan.services.store import ComplaintNotFoundError, InMemoryComplaintStore
from sudarshan.services.telephony import TelephonyConfigError, TelephonyError, TelephonyService

__all__ = [
    "AuditCall",
    "AuditCallCorrelator",
    "ComplaintNotFoundError",
    "ComplaintService",
    "EmailIntakeAgent",
    "EvidenceResult",
    "EvidenceValidationGate",
    "ImapMailbox",
    "InMemoryComplaintStore",
    "IntakeCycleResult",
    "LLMService",
    "LocalBlobStorage",
    "MessagingService",
    "NotificationDispatcher",
    "RejectionResult",
    "SmtpMailer",
    "TelephonyConfigError",
    "TelephonyError",
    "TelephonyService",
    "build_sms_provider",
    "classify_department",
    "normalize_complaint",
]
