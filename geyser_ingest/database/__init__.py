"""
Database layer — the txns table and the idempotent transaction sink.

PostgreSQL in production (POSTGRES_DB_URL); SQLite URLs work too, which the tests rely on.
"""

from geyser_ingest.database.connection import build_engine, init_db, normalize_database_url
from geyser_ingest.database.models import Base, Txn
from geyser_ingest.database.repositories import TransactionSink

__all__ = [
    "Base",
    "TransactionSink",
    "Txn",
    "build_engine",
    "init_db",
    "normalize_database_url",
]
