# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   Copy the project DSN to .env: SENTRY_DSN=https://...@sentry.io/...
#
# Usage:
#   init_sentry(settings) runs in the app lifespan. Without a DSN it does
#   nothing.
#
# =============================================================================

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from usergate.core.errors import UsergateError

if TYPE_CHECKING:
    from usergate.config import Settings

logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = ("authorization", "cookie", "set-cookie")
_QUIET_TRANSACTIONS = ("/api/health", "/api/healthz", "/api/ready")


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry error tracking.
    
    Returns True if initialized, False if skipped.
    """
    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False
    
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="url"),
            StarletteIntegration(transaction_style="url"),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        # Usernames and emails stay out of reports
        send_default_pii=False,
        before_send=filter_event,
        before_send_transaction=filter_transaction,
    )
    
    logger.info("Sentry initialized for %s", settings.environment)
    return True


def filter_event(event: dict, hint: dict) -> dict | None:
    """Drop expected client errors and scrub credentials from requests."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, UsergateError) and exc_value.status_code < 500:
            return None
    
    headers = event.get("request", {}).get("headers")
    if headers:
        for key in list(headers.keys()):
            if key.lower() in _SENSITIVE_HEADERS:
                headers[key] = "[Filtered]"
    
    return event


def filter_transaction(event: dict, hint: dict) -> dict | None:
    """Probes are too frequent to be worth tracing."""
    if event.get("transaction", "") in _QUIET_TRANSACTIONS:
        return None
    return event
