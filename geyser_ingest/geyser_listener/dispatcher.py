"""
Update dispatcher — one inbound message per step.

| kind        | action                                         |
|-------------|------------------------------------------------|
| TRANSACTION | decode, persist, log a transaction summary     |
| PING        | reply through the keepalive responder          |
| PONG        | nothing                                        |
| UNKNOWN     | ProtocolError (the session ends, supervisor reconnects) |

A malformed transaction (DecodeError) is logged and dropped; the stream keeps
going. Persist failures are retried a bounded number of times and then
handled per PersistFailurePolicy. Everything else propagates to the session.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Protocol

from geyser_ingest.core.exceptions import DecodeError, PersistError, ProtocolError
from geyser_ingest.geyser_listener.codec import decode
from geyser_ingest.geyser_listener.keepalive import KeepaliveResponder
from geyser_ingest.geyser_listener.models import CanonicalRecord, InboundUpdate, UpdateKind
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)

DEFAULT_PERSIST_ATTEMPTS = 3
DEFAULT_PERSIST_RETRY_DELAY_SEC = 0.5

_END = object()
_STOPPED = object()


class PersistFailurePolicy(str, Enum):
    """
    What to do when a record still fails to persist after the bounded retries.

    ABSORB: log and drop the record, keep the session alive (default).
    ESCALATE: raise PersistError, ending the session so the supervisor reconnects.
    """

    ABSORB = "absorb"
    ESCALATE = "escalate"


class RecordSink(Protocol):
    """Storage contract used by the dispatcher (TransactionSink in production)."""

    def persist(self, record: CanonicalRecord) -> bool:
        ...


@dataclass
class DispatchStats:
    """Per-session counters, logged when the stream closes."""

    transactions: int = 0
    persisted: int = 0
    duplicates: int = 0
    decode_errors: int = 0
    persist_errors: int = 0
    pings: int = 0
    pongs: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _format_created_at(created_at: datetime) -> str:
    """seconds.micros since epoch, e.g. 1700000000.000123"""
    seconds = int(created_at.timestamp())
    return f"{seconds}.{created_at.microsecond:06d}"


async def _pull(iterator: AsyncIterator[InboundUpdate]) -> object:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END


async def _next_update(iterator: AsyncIterator[InboundUpdate], stop_event: asyncio.Event | None) -> object:
    """Next update, _END at end of stream, or _STOPPED if stop_event fires first."""
    if stop_event is None:
        return await _pull(iterator)
    if stop_event.is_set():
        return _STOPPED
    next_task = asyncio.ensure_future(_pull(iterator))
    stop_task = asyncio.ensure_future(stop_event.wait())
    try:
        done, _ = await asyncio.wait({next_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        # The pull task must finish before the session closes the stream
        next_task.cancel()
        stop_task.cancel()
        await asyncio.gather(next_task, stop_task, return_exceptions=True)
        raise
    finally:
        stop_task.cancel()
    if next_task in done:
        return next_task.result()
    next_task.cancel()
    try:
        await next_task
    except asyncio.CancelledError:
        pass
    return _STOPPED


class UpdateDispatcher:
    """Routes each InboundUpdate to the codec + sink or the keepalive responder."""

    def __init__(
        self,
        sink: RecordSink,
        responder: KeepaliveResponder,
        *,
        persist_policy: PersistFailurePolicy = PersistFailurePolicy.ABSORB,
        persist_attempts: int = DEFAULT_PERSIST_ATTEMPTS,
        persist_retry_delay_sec: float = DEFAULT_PERSIST_RETRY_DELAY_SEC,
    ) -> None:
        if persist_attempts < 1:
            raise ValueError("persist_attempts must be >= 1")
        self._sink = sink
        self._responder = responder
        self._persist_policy = persist_policy
        self._persist_attempts = persist_attempts
        self._persist_retry_delay = persist_retry_delay_sec
        self.stats = DispatchStats()

    async def run(
        self,
        updates: AsyncIterator[InboundUpdate],
        stop_event: asyncio.Event | None = None,
    ) -> bool:
        """
        Consume the stream until it ends, an error propagates, or stop_event is set.

        Returns True if the loop exited because of stop_event, False on end of stream.
        """
        iterator = updates.__aiter__()
        while True:
            update = await _next_update(iterator, stop_event)
            if update is _END:
                return False
            if update is _STOPPED:
                return True
            await self.dispatch(update)

    async def dispatch(self, update: InboundUpdate) -> None:
        """Handle one update. Raises ProtocolError, TransportError, or PersistError (ESCALATE)."""
        if update.created_at is None:
            raise ProtocolError("no created_at in the message")

        if update.kind is UpdateKind.TRANSACTION:
            await self._handle_transaction(update)
        elif update.kind is UpdateKind.PING:
            self.stats.pings += 1
            await self._responder.respond()
        elif update.kind is UpdateKind.PONG:
            self.stats.pongs += 1
            logger.debug("pong_received", pong_id=update.pong_id)
        elif update.raw_kind is None:
            logger.error("update_not_found")
            raise ProtocolError("update not found in the message")
        else:
            logger.error("unexpected_update", update_kind=update.raw_kind)
            raise ProtocolError(f"unexpected update message: {update.raw_kind}")

    async def _handle_transaction(self, update: InboundUpdate) -> None:
        tx_update = update.transaction
        if tx_update is None or tx_update.transaction is None:
            raise ProtocolError("no transaction in the message")
        self.stats.transactions += 1

        try:
            record = decode(tx_update.transaction, update.created_at)
        except DecodeError as e:
            self.stats.decode_errors += 1
            logger.warning(
                "transaction_decode_failed",
                error=str(e),
                error_type=type(e).__name__,
                slot=tx_update.slot,
            )
            return

        if await self._persist(record):
            self.stats.persisted += 1
        logger.info(
            "transaction",
            filters=",".join(update.filters),
            created_at=_format_created_at(update.created_at),
            slot=tx_update.slot,
            **record.to_dict(),
        )

    async def _call_sink(self, record: CanonicalRecord) -> bool:
        persist = self._sink.persist
        if inspect.iscoroutinefunction(persist):
            return await persist(record)
        # Blocking DB driver: keep the event loop free for the stream
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, persist, record)

    async def _persist(self, record: CanonicalRecord) -> bool:
        """Returns True if the record was written; False if duplicate or absorbed failure."""
        last_error: PersistError | None = None
        for attempt in range(self._persist_attempts):
            try:
                inserted = await self._call_sink(record)
            except PersistError as e:
                last_error = e
                logger.warning(
                    "persist_retry",
                    txn_hash=record.txn_hash,
                    attempt=attempt + 1,
                    max_attempts=self._persist_attempts,
                    error=str(e),
                )
                if attempt + 1 < self._persist_attempts:
                    await asyncio.sleep(self._persist_retry_delay)
                continue
            if not inserted:
                self.stats.duplicates += 1
            return inserted

        self.stats.persist_errors += 1
        if self._persist_policy is PersistFailurePolicy.ESCALATE:
            logger.error("persist_failed_escalating", txn_hash=record.txn_hash, error=str(last_error))
            raise last_error
        logger.error("persist_failed", txn_hash=record.txn_hash, error=str(last_error), policy="absorb")
        return False
