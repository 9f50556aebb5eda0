"""
Pipeline module exports.

Tenant resolution, per-delivery orchestration and background scheduling.
"""

from pipeline.orchestrator import (
    APOLOGY_ERROR_TEXT,
    APOLOGY_PROCESSING_TEXT,
    WebhookOrchestrator,
)
from pipeline.outcomes import DeliveryReport, MessageOutcome, OutcomeStatus, StatusOutcome
from pipeline.resolver import (
    FALLBACK_TENANT_ID,
    TenantResolution,
    TenantResolver,
    UnknownVerifyToken,
    VerifyTokenNotConfigured,
)
from pipeline.tasks import BackgroundTaskRunner

__all__ = [
    "WebhookOrchestrator",
    "APOLOGY_PROCESSING_TEXT",
    "APOLOGY_ERROR_TEXT",
    "DeliveryReport",
    "MessageOutcome",
    "StatusOutcome",
    "OutcomeStatus",
    "TenantResolver",
    "TenantResolution",
    "UnknownVerifyToken",
    "VerifyTokenNotConfigured",
    "FALLBACK_TENANT_ID",
    "BackgroundTaskRunner",
]
