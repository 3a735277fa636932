"""
Persistence sink — idempotent writes of canonical transaction records.

One INSERT ... ON CONFLICT (txn_hash) DO NOTHING per record, with bound
parameters. A duplicate key is not an error: the feed may re-deliver updates
after a reconnect. Any other database failure is raised as PersistError.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from geyser_ingest.core.exceptions import PersistError
from geyser_ingest.database.models import Txn
from geyser_ingest.geyser_listener.models import CanonicalRecord
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)


class TransactionSink:
    """Writes CanonicalRecords to the txns table; safe to call twice with the same txn_hash."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(autoflush=False, bind=engine)

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _upserts(self) -> bool:
        """True when the dialect supports ON CONFLICT DO NOTHING."""
        return self._engine.dialect.name in ("postgresql", "sqlite")

    def _insert_statement(self, values: dict[str, Any]):
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return pg_insert(Txn).values(**values).on_conflict_do_nothing(index_elements=[Txn.txn_hash])
        if dialect == "sqlite":
            return sqlite_insert(Txn).values(**values).on_conflict_do_nothing(index_elements=[Txn.txn_hash])
        # Other dialects: plain insert, duplicate detected via IntegrityError below
        return insert(Txn).values(**values)

    def persist(self, record: CanonicalRecord) -> bool:
        """
        Insert one record. Returns True if a row was written, False if txn_hash already existed.

        Raises:
            PersistError: connectivity loss, constraint violation other than the
                txn_hash key, or any other non-duplicate failure.
        """
        values = {
            "txn_hash": record.txn_hash,
            "unix_epoch": record.observed_at,
            "signer": record.signer,
            "fee": record.fee,
        }
        try:
            with self._session_scope() as session:
                result = session.execute(self._insert_statement(values))
                inserted = result.rowcount != 0
        except IntegrityError as e:
            # With ON CONFLICT in place a violation comes from another constraint
            if self._upserts():
                raise PersistError(f"failed to persist {record.txn_hash}: {e}") from e
            logger.debug("txn_already_exists", txn_hash=record.txn_hash)
            return False
        except SQLAlchemyError as e:
            raise PersistError(f"failed to persist {record.txn_hash}: {e}") from e
        if not inserted:
            logger.debug("txn_already_exists", txn_hash=record.txn_hash)
        return inserted

    def get(self, txn_hash: str) -> dict[str, Any] | None:
        """Return one stored row as dict, or None."""
        with self._session_scope() as session:
            row = session.get(Txn, txn_hash)
            return row.to_dict() if row else None

    def count(self) -> int:
        """Number of stored transactions."""
        with self._session_scope() as session:
            return int(session.scalar(select(func.count()).select_from(Txn)) or 0)
