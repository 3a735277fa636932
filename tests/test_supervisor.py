"""
Tests for the backoff schedule and ReconnectSupervisor.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeConnection, MemorySink, transaction_frame
from geyser_ingest.agent_worker import BackoffPolicy, ReconnectSupervisor, RetryState
from geyser_ingest.core.exceptions import ConnectError, RetriesExhausted
from geyser_ingest.geyser_listener.models import SubscriptionSpec
from geyser_ingest.geyser_listener.session import SessionManager
from geyser_ingest.geyser_listener.wire import parse_update

FAST = BackoffPolicy(initial_interval_sec=0.001, max_interval_sec=0.005)


def test_default_schedule():
    state = RetryState(BackoffPolicy())
    delays = [state.next_delay() for _ in range(5)]
    assert delays == pytest.approx([0.0, 0.5, 0.75, 1.125, 1.6875])
    assert state.is_first_attempt is False


def test_delays_non_decreasing_and_capped():
    state = RetryState(BackoffPolicy(initial_interval_sec=1.0, multiplier=2.0, max_interval_sec=10.0))
    delays = [state.next_delay() for _ in range(20)]
    assert delays[0] == 0.0
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert max(delays) == 10.0


def test_exhausted_only_with_max_attempts():
    unbounded = RetryState(BackoffPolicy())
    for _ in range(100):
        unbounded.next_delay()
    assert unbounded.exhausted is False

    bounded = RetryState(BackoffPolicy(max_attempts=2))
    bounded.next_delay()
    assert bounded.exhausted is False
    bounded.next_delay()
    assert bounded.exhausted is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_interval_sec": 0},
        {"multiplier": 0.5},
        {"initial_interval_sec": 5, "max_interval_sec": 1},
        {"max_attempts": 0},
    ],
)
def test_invalid_policy(kwargs):
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)


def test_connect_failures_exhaust_retries():
    calls = []

    async def connect():
        calls.append(1)
        raise ConnectError("connection refused")

    session = SessionManager(SubscriptionSpec(), MemorySink())
    policy = BackoffPolicy(initial_interval_sec=0.001, max_interval_sec=0.005, max_attempts=3)
    supervisor = ReconnectSupervisor(connect, session, backoff=policy)
    with pytest.raises(RetriesExhausted) as exc_info:
        asyncio.run(supervisor.run())
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, ConnectError)
    assert len(calls) == 3
    assert supervisor.sessions_run == 0


def test_clean_and_transient_sessions_both_reconnect():
    """Session 1 ends cleanly, session 2 fails, session 3 is stopped; backoff is never reset."""
    stop = asyncio.Event()
    sink = MemorySink()
    connections = []

    async def connect():
        n = len(connections)
        if n == 0:
            conn = FakeConnection([parse_update(transaction_frame(signature=bytes([1]) * 64))])
        elif n == 1:
            conn = FakeConnection([ConnectionResetError("reset by peer")])
        else:
            stop.set()
            conn = FakeConnection([], hold_open=True)
        connections.append(conn)
        return conn

    session = SessionManager(SubscriptionSpec(), sink, stop_event=stop)
    supervisor = ReconnectSupervisor(connect, session, backoff=FAST, stop_event=stop)
    asyncio.run(asyncio.wait_for(supervisor.run(), timeout=5))

    assert len(connections) == 3
    assert all(c.closed for c in connections)
    assert supervisor.sessions_run == 3
    assert supervisor.last_outcome.stopped is True
    assert supervisor.retry_state.attempts == 3
    assert len(sink.rows) == 1


def test_stop_during_backoff_wait():
    async def connect():
        raise ConnectError("down")

    async def _run():
        session = SessionManager(SubscriptionSpec(), MemorySink())
        policy = BackoffPolicy(initial_interval_sec=30.0)
        supervisor = ReconnectSupervisor(connect, session, backoff=policy)
        task = asyncio.ensure_future(supervisor.run())
        await asyncio.sleep(0.05)
        supervisor.stop()
        await asyncio.wait_for(task, timeout=2)
        return supervisor

    supervisor = asyncio.run(_run())
    assert supervisor.retry_state.attempts == 2
