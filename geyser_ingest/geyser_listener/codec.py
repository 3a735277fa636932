"""
Record codec — transaction update to canonical record.

Pure functions, no I/O: the same payload and timestamp always give the same
record. Base58 encoding of signatures and public keys goes through solders so
the output matches what Solana explorers and RPC nodes print.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from solders.pubkey import Pubkey
from solders.signature import Signature

from geyser_ingest.core.exceptions import (
    InvalidAccountKey,
    InvalidFee,
    InvalidSignature,
    MissingAccountKeys,
    MissingMetadata,
)
from geyser_ingest.geyser_listener.models import CanonicalRecord, TransactionPayload

SIGNATURE_LENGTH = 64
PUBKEY_LENGTH = 32


def encode_signature(raw: bytes) -> str:
    """Return the base58 string for 64 signature bytes; raise InvalidSignature otherwise."""
    if raw is None or len(raw) != SIGNATURE_LENGTH:
        size = 0 if raw is None else len(raw)
        raise InvalidSignature(f"signature must be {SIGNATURE_LENGTH} bytes, got {size}")
    return str(Signature.from_bytes(bytes(raw)))


def signature_bytes(txn_hash: str) -> bytes:
    """Inverse of encode_signature: base58 txn_hash back to the 64 raw bytes."""
    return bytes(Signature.from_string(txn_hash))


def encode_pubkey(key: bytes | str) -> str:
    """Base58 address for an account key. Strings are taken as already encoded."""
    if isinstance(key, str):
        return key
    if len(key) != PUBKEY_LENGTH:
        raise InvalidAccountKey(f"account key must be {PUBKEY_LENGTH} bytes, got {len(key)}")
    return str(Pubkey.from_bytes(bytes(key)))


def fee_lamports(raw: Any) -> int:
    """Fee as a non-negative int; accepts ints and decimal strings (uint64 JSON form)."""
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise InvalidFee(f"fee must be an integer, got {raw!r}")
    try:
        fee = int(raw)
    except ValueError as e:
        raise InvalidFee(f"fee must be an integer, got {raw!r}") from e
    if fee < 0:
        raise InvalidFee(f"fee must be >= 0, got {fee}")
    return fee


def _to_epoch_seconds(observed_at: datetime | int | float) -> int:
    if isinstance(observed_at, datetime):
        return int(observed_at.timestamp())
    return int(observed_at)


def decode(payload: TransactionPayload, observed_at: datetime | int | float) -> CanonicalRecord:
    """
    Build the canonical record for one transaction.

    Raises:
        MissingAccountKeys: message absent or account key list empty.
        InvalidAccountKey: signer key has the wrong length.
        InvalidSignature: signature bytes are not 64 long.
        MissingMetadata: status meta (fee) absent.
        InvalidFee: fee is negative or not an integer.
    """
    message = payload.message
    if message is None or not message.account_keys:
        raise MissingAccountKeys("transaction has no account keys")
    signer = encode_pubkey(message.account_keys[0])

    txn_hash = encode_signature(payload.signature)

    if payload.meta is None:
        raise MissingMetadata(f"transaction {txn_hash} has no meta")

    return CanonicalRecord(
        txn_hash=txn_hash,
        signer=signer,
        fee=fee_lamports(payload.meta.fee),
        observed_at=_to_epoch_seconds(observed_at),
    )
