"""
Session manager — one subscribe-to-termination lifecycle over a single connection.

Builds the subscribe request from the SubscriptionSpec, opens the stream,
drives the dispatcher and classifies the exit:

- CLEAN: the peer ended the stream normally (or a stop was requested).
- TRANSIENT: anything else (transport error, protocol violation, escalated
  persist failure). Never fatal here; the supervisor owns retry policy.

The connection is always closed before run() returns.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from geyser_ingest.geyser_listener.dispatcher import (
    DEFAULT_PERSIST_ATTEMPTS,
    DEFAULT_PERSIST_RETRY_DELAY_SEC,
    DispatchStats,
    PersistFailurePolicy,
    RecordSink,
    UpdateDispatcher,
)
from geyser_ingest.geyser_listener.keepalive import KeepaliveResponder
from geyser_ingest.geyser_listener.models import InboundUpdate, SubscribeRequest, SubscriptionSpec
from geyser_ingest.geyser_listener.transport import FeedConnection
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)


class OutcomeKind(str, Enum):
    CLEAN = "clean"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class SessionOutcome:
    """How a session ended. error is set for TRANSIENT outcomes."""

    kind: OutcomeKind
    error: BaseException | None = None
    stopped: bool = False
    stats: DispatchStats = field(default_factory=DispatchStats)
    pongs_sent: int = 0

    @property
    def is_transient(self) -> bool:
        return self.kind is OutcomeKind.TRANSIENT


class SessionManager:
    """Runs one session per call to run(); holds no connection state between runs."""

    def __init__(
        self,
        spec: SubscriptionSpec,
        sink: RecordSink,
        *,
        persist_policy: PersistFailurePolicy = PersistFailurePolicy.ABSORB,
        persist_attempts: int = DEFAULT_PERSIST_ATTEMPTS,
        persist_retry_delay_sec: float = DEFAULT_PERSIST_RETRY_DELAY_SEC,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._spec = spec
        self._sink = sink
        self._persist_policy = persist_policy
        self._persist_attempts = persist_attempts
        self._persist_retry_delay = persist_retry_delay_sec
        self._stop = stop_event

    @property
    def spec(self) -> SubscriptionSpec:
        return self._spec

    def build_request(self) -> SubscribeRequest:
        return SubscribeRequest.from_spec(self._spec)

    async def run(self, connection: FeedConnection) -> SessionOutcome:
        updates: AsyncIterator[InboundUpdate] | None = None
        dispatcher: UpdateDispatcher | None = None
        responder: KeepaliveResponder | None = None
        try:
            sender, updates = await connection.subscribe(self.build_request())
            logger.info(
                "stream_opened",
                commitment=self._spec.commitment.value,
                account_include=list(self._spec.account_include),
            )
            responder = KeepaliveResponder(sender)
            dispatcher = UpdateDispatcher(
                self._sink,
                responder,
                persist_policy=self._persist_policy,
                persist_attempts=self._persist_attempts,
                persist_retry_delay_sec=self._persist_retry_delay,
            )
            stopped = await dispatcher.run(updates, self._stop)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("stream_error", error=str(e), error_type=type(e).__name__)
            return SessionOutcome(
                OutcomeKind.TRANSIENT,
                error=e,
                stats=dispatcher.stats if dispatcher else DispatchStats(),
                pongs_sent=responder.replies_sent if responder else 0,
            )
        finally:
            await self._teardown(connection, updates)
            logger.info(
                "stream_closed",
                **(dispatcher.stats.to_dict() if dispatcher else {}),
            )
        return SessionOutcome(
            OutcomeKind.CLEAN,
            stopped=stopped,
            stats=dispatcher.stats,
            pongs_sent=responder.replies_sent,
        )

    async def _teardown(
        self,
        connection: FeedConnection,
        updates: AsyncIterator[InboundUpdate] | None,
    ) -> None:
        # Close errors never change the session outcome
        aclose = getattr(updates, "aclose", None)
        if aclose is not None:
            try:
                await aclose()
            except Exception as e:
                logger.warning("stream_close_failed", error=str(e))
        try:
            await connection.close()
        except Exception as e:
            logger.warning("connection_close_failed", error=str(e))
