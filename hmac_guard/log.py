"""
HMAC Guard Logging
==================
structlog setup and helpers that keep sensitive values out of logs.

Usage:
    from hmac_guard.log import setup_logging

    setup_logging(service_name="orders-api", json_output=True)
"""

import logging
import re
import sys
from typing import Optional

import structlog

_UNSAFE_LOG_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure stdlib logging and structlog for a service.

    Args:
        service_name: Bound to every log line as "service"
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console output otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def sanitize_for_log(value: Optional[str], max_length: int = 20) -> str:
    """Strip everything but [a-zA-Z0-9_-] from a prefix of the value."""
    if not value:
        return "..."
    return _UNSAFE_LOG_CHARS.sub("", value[:max_length]) + "..."


def mask_sensitive_value(value: str, visible_chars: int = 8) -> str:
    """Show only the first few characters of a sensitive value."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "..."


def truncate(value: Optional[str], max_length: int, suffix: str = "...") -> Optional[str]:
    """Truncate a string to max_length characters including the suffix."""
    if value is None or max_length <= 0 or len(value) <= max_length:
        return value
    return value[: max(0, max_length - len(suffix))] + suffix
