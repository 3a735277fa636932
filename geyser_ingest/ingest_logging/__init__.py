"""
Structured logging for geyser_ingest.

JSON logs with timestamp, level, logger name and event_type.
Use get_logger() in every module so the stream agent output stays aggregation-friendly.
"""

from geyser_ingest.ingest_logging.logger import configure_structlog, get_logger

__all__ = ["configure_structlog", "get_logger"]
