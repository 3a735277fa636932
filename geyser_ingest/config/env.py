"""
Environment variable loading for geyser_ingest.

- POSTGRES_DB_URL: connection string for the txns store (required to run)
- GEYSER_ENDPOINT: feed endpoint (default http://127.0.0.1:10000)
- GEYSER_X_TOKEN: feed access token (optional)
- GEYSER_ACCOUNTS: comma-separated account include filter (optional)
- GEYSER_COMMITMENT: processed | confirmed | finalized (default finalized)
- PERSIST_FAILURE_POLICY: absorb | escalate (default absorb)
- LOG_LEVEL, LOG_FORMAT: structlog level and renderer (json | console)
- Loads .env from project root when available.

CLI flags take precedence over these; see config.settings.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from geyser_ingest.geyser_listener.transport import DEFAULT_ENDPOINT

# Project root: config is geyser_ingest/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"


def load_ingest_env() -> None:
    """Load .env from project root (then the working directory). Existing env vars win."""
    load_dotenv(_ENV_PATH)
    load_dotenv()


def _get(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


def get_database_url() -> str | None:
    """Return POSTGRES_DB_URL, or None if unset."""
    return _get("POSTGRES_DB_URL")


def get_endpoint() -> str:
    return _get("GEYSER_ENDPOINT") or DEFAULT_ENDPOINT


def get_x_token() -> str | None:
    return _get("GEYSER_X_TOKEN")


def get_accounts() -> list[str]:
    """GEYSER_ACCOUNTS split on commas, blanks dropped."""
    raw = _get("GEYSER_ACCOUNTS") or ""
    return [a.strip() for a in raw.split(",") if a.strip()]


def get_commitment() -> str | None:
    return _get("GEYSER_COMMITMENT")


def get_persist_failure_policy() -> str | None:
    return _get("PERSIST_FAILURE_POLICY")


def get_log_level() -> str:
    return _get("LOG_LEVEL") or "INFO"


def get_log_format() -> str:
    return _get("LOG_FORMAT") or "json"
