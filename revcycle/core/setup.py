"""
Application setup and initialization.

Runs before the FastAPI application is created: environment loading,
Sentry and logging.
"""
import os

from dotenv import load_dotenv

from revcycle.config.sentry import init_sentry
from revcycle.config.settings import get_settings
from revcycle.utils.logger import configure_logging, get_logger


def setup_application() -> None:
    """
    Initialize application environment and configuration.

    Order matters: the .env file feeds every later step, and Sentry is
    initialized before anything that might fail at import time.
    """
    load_dotenv()

    init_sentry()

    configure_logging(
        log_level=os.getenv("LOG_LEVEL", "info"),
        log_format=os.getenv("LOG_FORMAT", "json"),
        log_file=os.getenv(
            "LOG_FILE",
            "revcycle.log" if os.getenv("ENVIRONMENT") == "production" else None,
        ),
        log_dir=os.getenv("LOG_DIR", "logs"),
    )

    logger = get_logger(__name__)

    # Fail at startup rather than on the first request with a bad setting.
    settings = get_settings()
    logger.info(
        "Revenue cycle settings loaded",
        environment=settings.environment,
        usage_indicator=settings.edi_usage_indicator,
        duplicate_denial_policy=settings.duplicate_denial_policy.value,
        appeal_window_days=settings.appeal_window_days,
    )
