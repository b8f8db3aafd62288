"""
Structured logging for LinkPulse.

Provides:
- setup_logging(): configure stdlib logging and structlog once at startup
- get_logger(): get a bound structlog logger
- hash_ip(): hash IP addresses for privacy in production

Production renders JSON lines; development renders a colored console view.
"""

import hashlib
import logging
import sys
from typing import Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, Processor

from ..config import settings

REDACTED_FIELDS = {"password", "token", "secret", "authorization", "api_key"}


def _log_level() -> str:
    return (settings.LOG_LEVEL or ("INFO" if settings.is_production else "DEBUG")).upper()


def _log_format() -> str:
    return settings.LOG_FORMAT or ("json" if settings.is_production else "console")


def hash_ip(ip_address: Optional[str]) -> Optional[str]:
    """
    Hash IP address for privacy in production.

    In production returns the first 16 chars of its SHA-256 digest,
    in development returns the address unchanged.
    """
    if ip_address and settings.is_production:
        return hashlib.sha256(ip_address.encode()).hexdigest()[:16]
    return ip_address


def redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Redact sensitive fields from logs."""
    for key in list(event_dict.keys()):
        if key in ("event", "level", "timestamp", "logger"):
            continue
        if any(sensitive in key.lower() for sensitive in REDACTED_FIELDS):
            event_dict[key] = "***REDACTED***"
    return event_dict


def configure_structlog() -> None:
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive_fields,
        structlog.processors.format_exc_info,
    ]

    if _log_format() == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True, pad_event=15, sort_keys=False)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_stdlib_logging() -> None:
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, _log_level()),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def setup_logging() -> None:
    """Initialize logging. Call once, early in application startup."""
    configure_stdlib_logging()
    configure_structlog()

    get_logger(__name__).info(
        "logging_initialized",
        env=settings.ENV,
        log_level=_log_level(),
        log_format=_log_format(),
    )


def get_logger(name: str) -> BoundLogger:
    """
    Get a logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("link_created", short_code="abc123")
    """
    return structlog.get_logger(name)
