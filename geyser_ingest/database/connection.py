"""
Database engine construction.

Responsibilities:
- Normalize POSTGRES_DB_URL (sqlx-style postgres:// URLs) into a SQLAlchemy URL.
- Build the engine with pre-ping so a store that restarted is reconnected transparently.
- Optional table bootstrap (init_db) for fresh databases; no migrations.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from geyser_ingest.database.models import Base
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)

# SQLAlchemy no longer accepts the postgres:// alias; postgresql:// uses psycopg2
_PG_URL_PREFIX = "postgresql://"


def normalize_database_url(url: str) -> str:
    """Map sqlx-style postgres:// URLs to postgresql://; leave other URLs alone."""
    url = url.strip()
    if url.startswith("postgres://"):
        return _PG_URL_PREFIX + url[len("postgres://"):]
    return url


def _redact(url: str) -> str:
    """host/db part of a URL, without credentials or query string."""
    return url.split("?")[0].split("@")[-1].split("//")[-1]


def build_engine(url: str) -> Engine:
    """Create the SQLAlchemy engine for the txns store."""
    url = normalize_database_url(url)
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    logger.info("db_engine_created", url=_redact(url), dialect=engine.dialect.name)
    return engine


def init_db(engine: Engine) -> None:
    """
    Create the txns table if it does not exist.
    Uses Base.metadata.create_all; safe to call repeatedly.
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("db_init", tables=sorted(Base.metadata.tables))
    except Exception as e:
        logger.exception("db_init_failed", error=str(e))
        raise
