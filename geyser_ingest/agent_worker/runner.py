"""
Agent runner — process lifecycle for the stream agent.

Builds the storage engine, sink, websocket transport, session manager and
supervisor from Settings, installs SIGINT/SIGTERM handlers that set the shared
stop event, and runs the supervisor until it stops.
"""

from __future__ import annotations

import asyncio
import signal

from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from geyser_ingest.agent_worker.supervisor import ReconnectSupervisor
from geyser_ingest.config.settings import Settings
from geyser_ingest.core.exceptions import ConfigError
from geyser_ingest.database.connection import build_engine, init_db
from geyser_ingest.database.repositories import TransactionSink
from geyser_ingest.geyser_listener.session import SessionManager
from geyser_ingest.geyser_listener.transport import WebsocketTransport
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    """SIGINT/SIGTERM set stop_event so the dispatch loop and backoff wait unwind promptly."""
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("agent_shutdown_signal", signal=sig.name)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # Signal handlers unsupported on this platform / not in main thread
            logger.debug("agent_signal_handler_unavailable", signal=sig.name)


async def run_agent(settings: Settings) -> None:
    """
    Run the ingestion agent until SIGINT/SIGTERM (or RetriesExhausted when bounded).

    Raises:
        ConfigError: the database URL cannot be turned into an engine.
        RetriesExhausted: max_attempts was configured and reached.
    """
    try:
        engine = build_engine(settings.database_url)
    except (ArgumentError, NoSuchModuleError) as e:
        raise ConfigError(f"invalid POSTGRES_DB_URL: {e}") from e
    if settings.init_db:
        init_db(engine)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    transport = WebsocketTransport(settings.endpoint, settings.x_token)
    session = SessionManager(
        settings.subscription,
        TransactionSink(engine),
        persist_policy=settings.persist_policy,
        persist_attempts=settings.persist_attempts,
        stop_event=stop_event,
    )
    supervisor = ReconnectSupervisor(
        transport.connect,
        session,
        backoff=settings.backoff,
        stop_event=stop_event,
    )
    logger.info(
        "agent_started",
        endpoint=transport.url,
        commitment=settings.subscription.commitment.value,
        account_include=list(settings.subscription.account_include),
        persist_policy=settings.persist_policy.value,
        max_attempts=settings.backoff.max_attempts,
    )
    try:
        await supervisor.run()
    finally:
        engine.dispose()
        logger.info("agent_stopped", sessions=supervisor.sessions_run)
