"""Sentry error tracking configuration."""
import os
from typing import Any, Dict, Optional

import sentry_sdk
from pydantic import Field
from pydantic_settings import BaseSettings
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from revcycle.utils.logger import get_logger

logger = get_logger(__name__)


class SentrySettings(BaseSettings):
    """Sentry configuration settings."""

    dsn: Optional[str] = Field(None, alias="SENTRY_DSN")
    environment: str = Field("development", alias="SENTRY_ENVIRONMENT")
    release: Optional[str] = Field(None, alias="SENTRY_RELEASE")
    traces_sample_rate: float = Field(0.1, alias="SENTRY_TRACES_SAMPLE_RATE")
    # Claims carry PHI; never ship request bodies or user data by default
    send_default_pii: bool = Field(False, alias="SENTRY_SEND_DEFAULT_PII")
    sensitive_keys: str = Field(
        "password,token,secret,member_id,dob,date_of_birth,first_name,last_name,edi_content,raw_remittance",
        alias="SENTRY_SENSITIVE_KEYS",
    )

    enable_alerts: bool = Field(True, alias="SENTRY_ENABLE_ALERTS")
    alert_on_errors: bool = Field(False, alias="SENTRY_ALERT_ON_ERRORS")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True


settings = SentrySettings()


def init_sentry() -> None:
    """
    Initialize Sentry error tracking.

    Called from ``setup_application`` and from the Celery app module, after
    ``load_dotenv()`` and before the rest of the application is imported.
    Does nothing without ``SENTRY_DSN`` or while ``TESTING=true``.
    """
    if not settings.dsn:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    if os.getenv("TESTING") == "true":
        logger.info("Skipping Sentry initialization in test environment")
        return

    sentry_sdk.init(
        dsn=settings.dsn,
        environment=settings.environment,
        release=settings.release,
        traces_sample_rate=settings.traces_sample_rate,
        send_default_pii=settings.send_default_pii,
        integrations=[
            CeleryIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=None, event_level=None),
        ],
        before_send=filter_sensitive_data,
    )
    logger.info("Sentry initialized", environment=settings.environment, release=settings.release)


def filter_sensitive_data(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Drop request bodies and any extra/context keys that look like patient data."""
    sensitive = [key.strip().lower() for key in settings.sensitive_keys.split(",") if key.strip()]

    request = event.get("request")
    if request:
        request.pop("data", None)
        request.pop("cookies", None)
        headers = request.get("headers") or {}
        for header in list(headers):
            if header.lower() in ("authorization", "cookie", "x-api-key"):
                headers.pop(header, None)

    if "user" in event:
        event["user"] = {"id": event["user"].get("id")}

    for section in ("extra", "contexts"):
        values = event.get(section)
        if not values:
            continue
        for key in list(values):
            if any(pattern in key.lower() for pattern in sensitive):
                values.pop(key, None)

    return event


def _configure_scope(
    scope,
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
    level: Optional[str] = None,
) -> None:
    if context:
        for key, value in context.items():
            scope.set_context(key, value if isinstance(value, dict) else {"value": value})
    if tags:
        for key, value in tags.items():
            scope.set_tag(key, value)
    if level:
        scope.set_level(level)


def capture_exception(
    exception: Exception,
    level: str = "error",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Capture an exception to Sentry with additional context.

    Returns:
        Event ID, or None when Sentry is not initialized
    """
    with sentry_sdk.new_scope() as scope:
        _configure_scope(scope, context, tags, level)
        return sentry_sdk.capture_exception(exception)


def capture_message(
    message: str,
    level: str = "info",
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """Capture a message to Sentry."""
    with sentry_sdk.new_scope() as scope:
        _configure_scope(scope, context, tags)
        return sentry_sdk.capture_message(message, level=level.lower())


def add_breadcrumb(
    message: str,
    category: str = "default",
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """Add a breadcrumb to Sentry."""
    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data or {})
