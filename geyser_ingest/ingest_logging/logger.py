"""
Structured JSON logging: timestamp, level, logger, event_type.

structlog with ISO timestamps and consistent keys for aggregation. Stream
modules call get_logger(__name__) and log a snake_case event name plus
keyword fields (txn_hash, filters, attempt, error, ...).

Uses only Python stdlib logging and structlog; no geyser_ingest imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

# Default log level from env
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# JSON output for production (LOG_FORMAT=json); human-readable for local
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type for consistency; keep message if present."""
    if "logger_name" in event_dict:
        event_dict["logger"] = event_dict.pop("logger_name")
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def configure_structlog(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog: JSON or console renderer, timestamp, level, event_type.

    Called once at import with LOG_LEVEL / LOG_FORMAT from the environment; the
    CLI calls it again after settings are resolved so --log-level wins.
    """
    level_value = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    fmt = (fmt or LOG_FORMAT).strip().lower()
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
    ]
    if fmt == "json":
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


# One-time configuration on first import
if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

    Log with event_type (first arg) and optional fields:
        logger = get_logger(__name__)
        logger.info("stream_opened", filters=["client"], commitment="finalized")
    Output (JSON): {"event_type": "stream_opened", "filters": ["client"], "commitment": "finalized",
    "timestamp": "...", "level": "info", "logger": "module.name"}
    """
    # Lazy proxy: module-level loggers pick up a later configure_structlog() call.
    # "logger" itself is a reserved keyword of structlog.get_logger, see _normalize_event.
    return structlog.get_logger(name, logger_name=name)
