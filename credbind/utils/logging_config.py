"""
Logging configuration using structlog for structured, JSON-based logging.

Log events carry credential ids and variable names, never secret values.
As a backstop, ``redact_sensitive_keys`` replaces the value of any event key
that looks like it holds a secret.
"""

import sys
from collections.abc import MutableMapping
from typing import Any

import structlog

SENSITIVE_KEY_MARKERS = ("password", "secret", "token", "value")
REDACTED = "****"


def redact_sensitive_keys(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor replacing values of secret-looking keys."""
    for key in list(event_dict):
        if key == "event":
            continue
        if any(marker in key.lower() for marker in SENSITIVE_KEY_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging with JSON output.

    Logs go to stderr so they never interleave with scope output on stdout.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_sensitive_keys,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        # Each CLI invocation may reconfigure the output stream
        cache_logger_on_first_use=False,
    )

