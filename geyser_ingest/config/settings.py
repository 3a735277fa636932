"""
Application settings.

Responsibilities:
- Merge CLI arguments with environment fallbacks (config.env).
- Validate required settings and provide defaults for optional ones.
- Expose a typed, frozen Settings object for the runner.

Any missing or invalid value raises ConfigError; the CLI turns that into exit code 1.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass

from geyser_ingest.agent_worker.backoff import (
    DEFAULT_INITIAL_INTERVAL_SEC,
    DEFAULT_MAX_INTERVAL_SEC,
    DEFAULT_MULTIPLIER,
    BackoffPolicy,
)
from geyser_ingest.config import env
from geyser_ingest.core.exceptions import ConfigError
from geyser_ingest.geyser_listener.dispatcher import DEFAULT_PERSIST_ATTEMPTS, PersistFailurePolicy
from geyser_ingest.geyser_listener.models import CommitmentLevel, SubscriptionSpec


@dataclass(frozen=True)
class Settings:
    """Everything the runner needs to start the agent."""

    endpoint: str
    x_token: str | None
    database_url: str
    subscription: SubscriptionSpec
    backoff: BackoffPolicy
    persist_policy: PersistFailurePolicy = PersistFailurePolicy.ABSORB
    persist_attempts: int = DEFAULT_PERSIST_ATTEMPTS
    init_db: bool = False
    log_level: str = "INFO"
    log_format: str = "json"


def _arg(args: argparse.Namespace | None, name: str):
    return getattr(args, name, None) if args is not None else None


def _parse_commitment(value: str | None) -> CommitmentLevel:
    try:
        return CommitmentLevel.parse(value)
    except ValueError as e:
        allowed = ", ".join(c.value for c in CommitmentLevel)
        raise ConfigError(f"invalid commitment {value!r}; expected one of: {allowed}") from e


def _parse_policy(value: str | None) -> PersistFailurePolicy:
    if not value:
        return PersistFailurePolicy.ABSORB
    try:
        return PersistFailurePolicy(value.strip().lower())
    except ValueError as e:
        allowed = ", ".join(p.value for p in PersistFailurePolicy)
        raise ConfigError(f"invalid persist failure policy {value!r}; expected one of: {allowed}") from e


def _first(*values):
    """First value that is not None."""
    return next((v for v in values if v is not None), None)


def get_settings(args: argparse.Namespace | None = None) -> Settings:
    """
    Return validated settings from CLI args (may be None) with env fallbacks.

    Raises:
        ConfigError: POSTGRES_DB_URL missing, or an invalid commitment/policy/backoff value.
    """
    env.load_ingest_env()

    database_url = env.get_database_url()
    if not database_url:
        raise ConfigError("POSTGRES_DB_URL is required (set it in the environment or .env)")

    accounts = _arg(args, "accounts") or env.get_accounts()
    subscription = SubscriptionSpec(
        account_include=tuple(accounts),
        commitment=_parse_commitment(_arg(args, "commitment") or env.get_commitment()),
    )

    try:
        backoff = BackoffPolicy(
            initial_interval_sec=_first(_arg(args, "backoff_initial"), DEFAULT_INITIAL_INTERVAL_SEC),
            multiplier=_first(_arg(args, "backoff_multiplier"), DEFAULT_MULTIPLIER),
            max_interval_sec=_first(_arg(args, "backoff_max"), DEFAULT_MAX_INTERVAL_SEC),
            max_attempts=_arg(args, "max_attempts"),
        )
    except ValueError as e:
        raise ConfigError(f"invalid backoff settings: {e}") from e

    persist_attempts = _first(_arg(args, "persist_attempts"), DEFAULT_PERSIST_ATTEMPTS)
    if persist_attempts < 1:
        raise ConfigError("persist attempts must be >= 1")

    return Settings(
        endpoint=_arg(args, "endpoint") or env.get_endpoint(),
        x_token=_arg(args, "x_token") or env.get_x_token(),
        database_url=database_url,
        subscription=subscription,
        backoff=backoff,
        persist_policy=_parse_policy(_arg(args, "on_persist_error") or env.get_persist_failure_policy()),
        persist_attempts=persist_attempts,
        init_db=bool(_arg(args, "init_db")),
        log_level=(_arg(args, "log_level") or env.get_log_level()).upper(),
        log_format=(_arg(args, "log_format") or env.get_log_format()).lower(),
    )
