"""
Data models for the Geyser transaction stream.

Responsibilities:
- SubscriptionSpec and CommitmentLevel: what the agent asks the feed for.
- SubscribeRequest and its filter/ping parts: outbound frames.
- InboundUpdate: tagged union of inbound update kinds (transaction, ping, pong, unknown).
- TransactionPayload and friends: the decoded transaction as delivered by the feed.
- CanonicalRecord: the flat row written to storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CommitmentLevel(str, Enum):
    """How finalized the feed's view must be before delivery (least to most durable)."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def wire_name(self) -> str:
        """Enum name as used in the proto3 JSON mapping (e.g. FINALIZED)."""
        return self.name

    @classmethod
    def parse(cls, value: str | None) -> "CommitmentLevel":
        """Parse a CLI/env value; None or empty means FINALIZED."""
        if not value:
            return cls.FINALIZED
        return cls(value.strip().lower())


@dataclass(frozen=True)
class SubscriptionSpec:
    """
    Immutable subscription configuration, built once from CLI/env.

    Vote and failed transactions are excluded by default.
    """

    account_include: tuple[str, ...] = ()
    account_exclude: tuple[str, ...] = ()
    account_required: tuple[str, ...] = ()
    commitment: CommitmentLevel = CommitmentLevel.FINALIZED
    vote: bool | None = False
    failed: bool | None = False
    filter_name: str = "client"


@dataclass(frozen=True)
class TransactionFilter:
    """Transaction filter entry of a SubscribeRequest."""

    vote: bool | None = None
    failed: bool | None = None
    signature: str | None = None
    account_include: tuple[str, ...] = ()
    account_exclude: tuple[str, ...] = ()
    account_required: tuple[str, ...] = ()


@dataclass(frozen=True)
class SubscribeRequestPing:
    """Client ping carried on the outbound side of the stream."""

    id: int


@dataclass(frozen=True)
class SubscribeRequest:
    """
    One outbound frame on the subscribe stream.

    The first frame carries the filters; later frames (keepalive) only set ping.
    """

    transactions: dict[str, TransactionFilter] = field(default_factory=dict)
    commitment: CommitmentLevel | None = None
    ping: SubscribeRequestPing | None = None

    @classmethod
    def from_spec(cls, spec: SubscriptionSpec) -> "SubscribeRequest":
        """Build the initial subscribe request for a SubscriptionSpec."""
        return cls(
            transactions={
                spec.filter_name: TransactionFilter(
                    vote=spec.vote,
                    failed=spec.failed,
                    account_include=spec.account_include,
                    account_exclude=spec.account_exclude,
                    account_required=spec.account_required,
                )
            },
            commitment=spec.commitment,
        )


@dataclass(frozen=True)
class TransactionMessage:
    """Transaction message; only the ordered account keys are needed."""

    account_keys: tuple[bytes | str, ...]
    """Raw 32-byte keys or base58 strings. First entry is the fee payer / signer."""


@dataclass(frozen=True)
class TransactionMeta:
    """Transaction status metadata."""

    fee: int | str
    """Fee in lamports as delivered (uint64 arrives as a JSON string); validated by the codec."""
    err: Any = None
    """None on success; error object from the feed otherwise."""


@dataclass(frozen=True)
class TransactionPayload:
    """Raw decoded transaction as delivered by the feed."""

    signature: bytes
    message: TransactionMessage | None = None
    meta: TransactionMeta | None = None
    is_vote: bool = False


@dataclass(frozen=True)
class TransactionUpdate:
    """Transaction update body: the payload plus the slot it landed in."""

    transaction: TransactionPayload | None
    slot: int | None = None


class UpdateKind(str, Enum):
    """Discriminant of the inbound update union."""

    TRANSACTION = "transaction"
    PING = "ping"
    PONG = "pong"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InboundUpdate:
    """
    One inbound message from the feed. Exactly one variant is active, selected by kind.

    UNKNOWN covers both a union tag this agent does not handle (raw_kind set)
    and a message with no tag at all (raw_kind None).
    """

    kind: UpdateKind
    created_at: datetime | None = None
    filters: tuple[str, ...] = ()
    transaction: TransactionUpdate | None = None
    pong_id: int | None = None
    raw_kind: str | None = None

    @classmethod
    def for_transaction(
        cls,
        update: TransactionUpdate,
        created_at: datetime | None,
        filters: tuple[str, ...] = (),
    ) -> "InboundUpdate":
        return cls(UpdateKind.TRANSACTION, created_at, filters, transaction=update)

    @classmethod
    def ping(cls, created_at: datetime | None = None, filters: tuple[str, ...] = ()) -> "InboundUpdate":
        return cls(UpdateKind.PING, created_at, filters)

    @classmethod
    def pong(cls, pong_id: int | None, created_at: datetime | None = None) -> "InboundUpdate":
        return cls(UpdateKind.PONG, created_at, pong_id=pong_id)

    @classmethod
    def unknown(cls, raw_kind: str | None, created_at: datetime | None = None) -> "InboundUpdate":
        return cls(UpdateKind.UNKNOWN, created_at, raw_kind=raw_kind)


@dataclass(frozen=True)
class CanonicalRecord:
    """
    Flat record persisted per transaction. txn_hash is the primary key.
    """

    txn_hash: str
    """Base58 transaction signature."""
    signer: str
    """Base58 address of the first account key (fee payer)."""
    fee: int
    """Fee in lamports (>= 0)."""
    observed_at: int
    """Unix seconds from the update's created_at."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "txn_hash": self.txn_hash,
            "signer": self.signer,
            "fee": self.fee,
            "unix_epoch": self.observed_at,
        }
