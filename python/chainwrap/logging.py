"""Structured logging for chainwrap.

This module provides structured logging functions on top of the standard
library ``logging`` package. Every record goes to the ``chainwrap`` logger,
with the structured fields attached under ``record.fields`` so handlers
and formatters can render them.

Example:
    >>> from chainwrap import log_info
    >>>
    >>> log_info("Registered a wrapper", {
    ...     "package_id": "my-pkg",
    ...     "target": "Token.draw",
    ... })
"""

from __future__ import annotations

import logging
from typing import Any

from .types import LogContext

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("chainwrap")


def log_error(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an ERROR level message with structured fields.

    Use this for engine invariant violations.

    Args:
        message: The log message.
        fields: Optional structured fields for context. Can be a dict
                or a LogContext instance.
    """
    _log(logging.ERROR, message, fields)


def log_warn(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a WARN level message with structured fields.

    Use this for conflicts and degraded operation.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _log(logging.WARNING, message, fields)


def log_info(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log an INFO level message with structured fields.

    Use this for lifecycle events: registrations, removals, readiness.

    Args:
        message: The log message.
        fields: Optional structured fields for context.

    Example:
        >>> log_info("Registered a wrapper", {"target": "Token.draw"})
    """
    _log(logging.INFO, message, fields)


def log_debug(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a DEBUG level message with structured fields.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _log(logging.DEBUG, message, fields)


def log_trace(message: str, fields: dict[str, Any] | LogContext | None = None) -> None:
    """Log a TRACE level message with structured fields.

    Use this for very verbose logging such as per-call chain tracing.
    This level is below DEBUG and disabled unless explicitly enabled.

    Args:
        message: The log message.
        fields: Optional structured fields for context.
    """
    _log(TRACE, message, fields)


def trace_enabled() -> bool:
    """Whether TRACE records would be emitted; check before building hot-path messages."""
    return logger.isEnabledFor(TRACE)


def _log(level: int, message: str, fields: dict[str, Any] | LogContext | None) -> None:
    if not logger.isEnabledFor(level):
        return
    fields_dict = _normalize_fields(fields)
    logger.log(level, message, extra={"fields": fields_dict or {}})


def _normalize_fields(
    fields: dict[str, Any] | LogContext | None,
) -> dict[str, str] | None:
    """Normalize fields to a dict of strings.

    Args:
        fields: Input fields as dict, LogContext, or None.

    Returns:
        Dict with string values, or None if no fields.
    """
    if fields is None:
        return None

    if isinstance(fields, LogContext):
        # Convert LogContext to dict, excluding None values
        return {k: str(v) for k, v in fields.model_dump().items() if v is not None}

    return {k: str(v) for k, v in fields.items()}


__all__ = [
    "TRACE",
    "log_error",
    "log_warn",
    "log_info",
    "log_debug",
    "log_trace",
    "trace_enabled",
]
