"""
Tests for SessionManager: one subscribe-to-termination lifecycle over a fake connection.
"""

from __future__ import annotations

import asyncio

from conftest import FakeConnection, MemorySink, ping_frame, transaction_frame
from geyser_ingest.core.exceptions import PersistError, ProtocolError, TransportError
from geyser_ingest.geyser_listener.dispatcher import PersistFailurePolicy
from geyser_ingest.geyser_listener.models import CommitmentLevel, InboundUpdate, SubscriptionSpec
from geyser_ingest.geyser_listener.session import OutcomeKind, SessionManager
from geyser_ingest.geyser_listener.wire import parse_update

SPEC = SubscriptionSpec(
    account_include=("9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka",),
    commitment=CommitmentLevel.CONFIRMED,
)


def _session(sink, **kwargs):
    kwargs.setdefault("persist_retry_delay_sec", 0)
    return SessionManager(SPEC, sink, **kwargs)


def test_transactions_and_ping_then_transport_error():
    """Txn, Ping, Txn, then a stream error: 2 rows, 1 keepalive, TRANSIENT, connection closed."""
    sink = MemorySink()
    conn = FakeConnection(
        [
            parse_update(transaction_frame(signature=bytes([1]) * 64)),
            parse_update(ping_frame()),
            parse_update(transaction_frame(signature=bytes([2]) * 64)),
            TransportError("connection reset"),
        ]
    )
    outcome = asyncio.run(_session(sink).run(conn))
    assert outcome.kind is OutcomeKind.TRANSIENT
    assert isinstance(outcome.error, TransportError)
    assert len(sink.rows) == 2
    assert outcome.pongs_sent == 1
    assert len(conn.sender.sent) == 1
    assert outcome.stats.persisted == 2
    assert conn.closed is True


def test_subscribe_request_matches_spec():
    conn = FakeConnection([])
    session = _session(MemorySink())
    asyncio.run(session.run(conn))
    assert conn.requests == [session.build_request()]
    request = conn.requests[0]
    assert request.commitment is CommitmentLevel.CONFIRMED
    txn_filter = request.transactions["client"]
    assert txn_filter.vote is False
    assert txn_filter.failed is False
    assert txn_filter.account_include == SPEC.account_include


def test_end_of_stream_is_clean():
    sink = MemorySink()
    conn = FakeConnection([parse_update(transaction_frame())])
    outcome = asyncio.run(_session(sink).run(conn))
    assert outcome.kind is OutcomeKind.CLEAN
    assert outcome.stopped is False
    assert len(sink.rows) == 1
    assert conn.closed is True


def test_unknown_update_ends_session():
    """Nothing after the unknown update is persisted."""
    sink = MemorySink()
    created_at = parse_update(ping_frame()).created_at
    conn = FakeConnection([InboundUpdate.unknown("slot", created_at), parse_update(transaction_frame())])
    outcome = asyncio.run(_session(sink).run(conn))
    assert outcome.kind is OutcomeKind.TRANSIENT
    assert isinstance(outcome.error, ProtocolError)
    assert sink.rows == {}


def test_persist_failure_absorbed_keeps_session():
    sink = MemorySink(fail_times=3)
    conn = FakeConnection(
        [
            parse_update(transaction_frame(signature=bytes([1]) * 64)),
            parse_update(transaction_frame(signature=bytes([2]) * 64)),
        ]
    )
    outcome = asyncio.run(_session(sink, persist_attempts=3).run(conn))
    assert outcome.kind is OutcomeKind.CLEAN
    assert outcome.stats.persist_errors == 1
    assert len(sink.rows) == 1


def test_persist_failure_escalated_ends_session():
    sink = MemorySink(fail_times=3)
    conn = FakeConnection([parse_update(transaction_frame())])
    session = _session(sink, persist_attempts=3, persist_policy=PersistFailurePolicy.ESCALATE)
    outcome = asyncio.run(session.run(conn))
    assert outcome.kind is OutcomeKind.TRANSIENT
    assert isinstance(outcome.error, PersistError)
    assert conn.closed is True


def test_stop_event_ends_idle_session():
    async def _run():
        stop = asyncio.Event()
        conn = FakeConnection([parse_update(ping_frame())], hold_open=True)
        session = _session(MemorySink(), stop_event=stop)
        task = asyncio.ensure_future(session.run(conn))
        await asyncio.sleep(0.01)
        stop.set()
        return await asyncio.wait_for(task, timeout=2), conn

    outcome, conn = asyncio.run(_run())
    assert outcome.kind is OutcomeKind.CLEAN
    assert outcome.stopped is True
    assert outcome.pongs_sent == 1
    assert conn.closed is True


def test_subscribe_failure_is_transient():
    class BrokenConnection(FakeConnection):
        async def subscribe(self, request):
            raise TransportError("send failed")

    conn = BrokenConnection([])
    outcome = asyncio.run(_session(MemorySink()).run(conn))
    assert outcome.kind is OutcomeKind.TRANSIENT
    assert conn.closed is True


def test_malformed_fee_is_dropped_and_session_continues():
    """Negative and non-numeric fees drop only their own transaction."""
    sink = MemorySink()
    conn = FakeConnection(
        [
            parse_update(transaction_frame(signature=bytes([1]) * 64, fee=-5)),
            parse_update(transaction_frame(signature=bytes([2]) * 64, fee="n/a")),
            parse_update(transaction_frame(signature=bytes([3]) * 64)),
        ]
    )
    outcome = asyncio.run(_session(sink).run(conn))
    assert outcome.kind is OutcomeKind.CLEAN
    assert outcome.stats.decode_errors == 2
    assert [r.fee for r in sink.rows.values()] == [5000]
