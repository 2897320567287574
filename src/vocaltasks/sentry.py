"""Sentry error tracking integration.

Usage:
    from vocaltasks.sentry import init_sentry
    init_sentry(dsn=settings.sentry_dsn, environment=settings.sentry_environment)

Provider fallbacks are logged at WARNING and only become breadcrumbs;
unexpected errors logged with ``logger.exception`` are sent as events.
"""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from sentry_sdk._types import Event, Hint

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset(
    {
        "token",
        "key",
        "api_key",
        "apikey",
        "secret",
        "password",
        "authorization",
        "bearer",
        "gemini_api_key",
        "openai_api_key",
        "sentry_dsn",
    }
)

_QUERY_KEY = re.compile(r"(\bkey=)[^&\s]+")

# Module state
_initialized = False


def init_sentry(
    dsn: str | None = None,
    environment: str = "production",
    release: str | None = None,
    traces_sample_rate: float = 0.0,
    debug: bool = False,
) -> bool:
    """Initialize Sentry SDK for error tracking.

    Args:
        dsn: Sentry DSN. If None, reads from SENTRY_DSN env var.
             Empty/None DSN disables Sentry (safe for development).
        environment: Environment name (production, staging, development).
        release: Release version. If None, auto-detected from package version.
        traces_sample_rate: Sample rate for performance tracing (0.0-1.0).
        debug: Enable Sentry debug mode for troubleshooting.

    Returns:
        True if Sentry was initialized, False if skipped.
    """
    global _initialized

    if _initialized:
        logger.debug("Sentry already initialized")
        return True

    if dsn is None:
        dsn = os.environ.get("SENTRY_DSN", "")

    # Empty DSN disables Sentry (expected in development)
    if not dsn:
        logger.info("No SENTRY_DSN configured, error tracking disabled")
        return False

    if release is None:
        from importlib.metadata import PackageNotFoundError, version

        try:
            release = f"vocaltasks@{version('vocaltasks')}"
        except PackageNotFoundError:
            release = "vocaltasks@unknown"

    logging_integration = LoggingIntegration(
        level=logging.INFO,  # Capture INFO and above as breadcrumbs
        event_level=logging.ERROR,  # Send ERROR and above to Sentry
    )

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
        debug=debug,
        integrations=[logging_integration],
        # Voice notes are personal data
        send_default_pii=False,
        before_send=_before_send,
    )

    _initialized = True
    logger.info("Sentry initialized: environment=%s, release=%s", environment, release)
    return True


def _before_send(event: Event, hint: Hint) -> Event | None:
    """Scrub credentials from request data and breadcrumbs before sending."""
    if "request" in event:
        _scrub_dict(cast(dict[str, Any], event["request"]))

    if "breadcrumbs" in event:
        breadcrumbs = cast(dict[str, Any], event["breadcrumbs"])
        for breadcrumb in breadcrumbs.get("values", []):
            if "data" in breadcrumb:
                _scrub_dict(breadcrumb["data"])
            if isinstance(breadcrumb.get("message"), str):
                breadcrumb["message"] = _scrub_text(breadcrumb["message"])

    if "logentry" in event:
        _scrub_dict(cast(dict[str, Any], event["logentry"]))

    return event


def _scrub_dict(data: dict[str, Any]) -> None:
    """Scrub sensitive keys from a dictionary in-place."""
    for key in list(data.keys()):
        if key.lower() in SENSITIVE_KEYS:
            data[key] = "[REDACTED]"
        elif isinstance(data[key], str):
            data[key] = _scrub_text(data[key])
        elif isinstance(data[key], dict):
            _scrub_dict(data[key])


def _scrub_text(text: str) -> str:
    """Redact ``key=...`` query parameters embedded in URLs or messages."""
    if "key=" not in text:
        return text
    return _QUERY_KEY.sub(r"\1[REDACTED]", text)


def set_tag(key: str, value: str) -> None:
    """Set a tag on the current Sentry scope."""
    if not _initialized:
        return

    sentry_sdk.set_tag(key, value)


def flush(timeout: float = 2.0) -> None:
    """Flush pending Sentry events before shutdown."""
    if not _initialized:
        return

    sentry_sdk.flush(timeout=timeout)


def is_enabled() -> bool:
    """Check if Sentry is enabled and initialized."""
    return _initialized
