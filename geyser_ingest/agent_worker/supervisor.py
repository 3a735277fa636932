"""
Reconnect supervisor — the outer 24/7 loop.

connect → run session → wait per backoff → connect again. Both TRANSIENT and
CLEAN outcomes lead to a reconnect: the feed closing the stream is not a
reason to stop ingesting. ConnectError counts as a transient failure. The
loop only ends when the stop event is set or, if max_attempts is configured,
with RetriesExhausted.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from geyser_ingest.agent_worker.backoff import BackoffPolicy, RetryState
from geyser_ingest.core.exceptions import ConnectError, RetriesExhausted
from geyser_ingest.geyser_listener.session import SessionManager, SessionOutcome
from geyser_ingest.geyser_listener.transport import FeedConnection
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)


class ReconnectSupervisor:
    """Drives SessionManager runs over fresh connections until stopped."""

    def __init__(
        self,
        connect: Callable[[], Awaitable[FeedConnection]],
        session: SessionManager,
        *,
        backoff: BackoffPolicy | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._connect = connect
        self._session = session
        self._retry = RetryState(backoff or BackoffPolicy())
        self._stop = stop_event or asyncio.Event()
        self._last_error: BaseException | None = None
        self.last_outcome: SessionOutcome | None = None
        self.sessions_run = 0

    @property
    def retry_state(self) -> RetryState:
        return self._retry

    def stop(self) -> None:
        """Signal the supervisor (and the running session, if it shares the event) to stop."""
        self._stop.set()

    async def _wait(self, delay: float) -> bool:
        """Sleep for delay seconds; return True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def run(self) -> None:
        while not self._stop.is_set():
            if self._retry.exhausted:
                logger.error("supervisor_give_up", attempts=self._retry.attempts, error=str(self._last_error))
                raise RetriesExhausted(self._retry.attempts, self._last_error)

            delay = self._retry.next_delay()
            if delay > 0:
                logger.info("reconnect_backoff", attempt=self._retry.attempts, backoff_sec=round(delay, 3))
                if await self._wait(delay):
                    break
            if not self._retry.is_first_attempt:
                logger.info("retry_connect", attempt=self._retry.attempts)

            outcome = await self._attempt()
            if outcome is not None and outcome.stopped:
                break
        logger.info("supervisor_stopped", attempts=self._retry.attempts)

    async def _attempt(self) -> SessionOutcome | None:
        """One connect + session. Returns None when the connect itself failed."""
        try:
            connection = await self._connect()
        except ConnectError as e:
            self._last_error = e
            logger.error("failed_to_connect", attempt=self._retry.attempts, error=str(e))
            return None
        logger.info("connected", attempt=self._retry.attempts)

        outcome = await self._session.run(connection)
        self.last_outcome = outcome
        self.sessions_run += 1
        if outcome.is_transient:
            self._last_error = outcome.error
            logger.warning(
                "session_transient",
                attempt=self._retry.attempts,
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )
        elif not outcome.stopped:
            logger.info("session_clean", attempt=self._retry.attempts)
        return outcome
