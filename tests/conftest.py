"""
Pytest fixtures for geyser_ingest tests. Uses a temporary SQLite DB for the txns store
and in-memory fakes for the feed connection.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Any, AsyncIterator, Iterable

import pytest

from geyser_ingest.core.exceptions import PersistError
from geyser_ingest.geyser_listener.models import CanonicalRecord, SubscribeRequest

SIGNER_KEY = bytes(range(1, 33))
OTHER_KEY = bytes(range(33, 65))
SIGNATURE = bytes(range(64))
CREATED_AT = "2024-01-02T03:04:05.123456789Z"


def b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def transaction_frame(
    signature: bytes = SIGNATURE,
    keys: Iterable[bytes] = (SIGNER_KEY, OTHER_KEY),
    fee: int | str | None = 5000,
    created_at: str | None = CREATED_AT,
    slot: int = 250_000_000,
) -> dict[str, Any]:
    """Proto3-JSON SubscribeUpdate carrying one transaction."""
    info: dict[str, Any] = {
        "signature": b64(signature),
        "isVote": False,
        "transaction": {"message": {"accountKeys": [b64(k) for k in keys]}},
    }
    if fee is not None:
        info["meta"] = {"fee": str(fee)}
    frame: dict[str, Any] = {
        "filters": ["client"],
        "transaction": {"transaction": info, "slot": str(slot)},
    }
    if created_at is not None:
        frame["createdAt"] = created_at
    return frame


def ping_frame(created_at: str | None = CREATED_AT) -> dict[str, Any]:
    frame: dict[str, Any] = {"filters": ["client"], "ping": {}}
    if created_at is not None:
        frame["createdAt"] = created_at
    return frame


class FakeSender:
    """Records every SubscribeRequest sent on the outbound side."""

    def __init__(self, fail_with: BaseException | None = None) -> None:
        self.sent: list[SubscribeRequest] = []
        self._fail_with = fail_with

    async def send(self, request: SubscribeRequest) -> None:
        if self._fail_with is not None:
            raise self._fail_with
        self.sent.append(request)


class FakeConnection:
    """
    FeedConnection over a scripted list of items. Each item is an InboundUpdate
    (yielded) or an exception (raised from the stream). hold_open=True keeps the
    stream pending after the script, like a live feed with no traffic.
    """

    def __init__(self, items: list, *, hold_open: bool = False, sender: FakeSender | None = None) -> None:
        self.items = list(items)
        self.hold_open = hold_open
        self.sender = sender or FakeSender()
        self.requests: list[SubscribeRequest] = []
        self.closed = False

    async def subscribe(self, request: SubscribeRequest):
        self.requests.append(request)
        return self.sender, self._stream()

    async def _stream(self) -> AsyncIterator:
        for item in self.items:
            if isinstance(item, BaseException):
                raise item
            yield item
        if self.hold_open:
            await asyncio.Event().wait()

    async def close(self) -> None:
        self.closed = True


class MemorySink:
    """In-memory RecordSink keyed by txn_hash; fail_times makes the first N calls raise PersistError."""

    def __init__(self, fail_times: int = 0) -> None:
        self.rows: dict[str, CanonicalRecord] = {}
        self.calls = 0
        self._fail_times = fail_times

    def persist(self, record: CanonicalRecord) -> bool:
        self.calls += 1
        if self.calls <= self._fail_times:
            raise PersistError("database unavailable")
        if record.txn_hash in self.rows:
            return False
        self.rows[record.txn_hash] = record
        return True


@pytest.fixture
def engine(tmp_path):
    """SQLite engine on a temporary file with the txns table created."""
    from geyser_ingest.database import build_engine, init_db

    eng = build_engine(f"sqlite:///{tmp_path / 'txns.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sink(engine):
    from geyser_ingest.database import TransactionSink

    return TransactionSink(engine)


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear ingest env vars and run from an empty directory so no .env leaks in."""
    for name in (
        "POSTGRES_DB_URL",
        "GEYSER_ENDPOINT",
        "GEYSER_X_TOKEN",
        "GEYSER_ACCOUNTS",
        "GEYSER_COMMITMENT",
        "PERSIST_FAILURE_POLICY",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch
