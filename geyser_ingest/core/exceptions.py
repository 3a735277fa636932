"""
Application-level exceptions.

One hierarchy rooted at IngestError so the session and supervisor layers can
classify failures by type:

- ConnectError, TransportError, ProtocolError: the session ends and the
  supervisor reconnects with backoff.
- DecodeError (and subclasses): one malformed transaction; logged and dropped.
- PersistError: storage write failed; handled per PersistFailurePolicy.
- ConfigError: bad startup configuration; the process exits non-zero.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all geyser_ingest errors."""


class ConfigError(IngestError):
    """Missing or invalid startup configuration (fatal)."""


class ConnectError(IngestError):
    """Could not establish or authenticate the feed connection."""


class TransportError(IngestError):
    """Mid-stream receive or send failure on an open feed connection."""


class ProtocolError(IngestError):
    """The feed sent something the protocol does not allow (unknown or absent update tag)."""


class DecodeError(IngestError):
    """A single transaction update could not be turned into a canonical record."""


class MissingAccountKeys(DecodeError):
    """Transaction message or its account key list is absent or empty."""


class InvalidAccountKey(DecodeError):
    """An account key is not a valid 32-byte public key."""


class InvalidSignature(DecodeError):
    """Signature bytes do not have the fixed signature length."""


class MissingMetadata(DecodeError):
    """Transaction status metadata (fee) is absent."""


class InvalidFee(DecodeError):
    """Fee is not a non-negative integer number of lamports."""


class PersistError(IngestError):
    """Writing a record to the store failed for a reason other than a duplicate key."""


class RetriesExhausted(IngestError):
    """The supervisor reached its configured max_attempts."""

    def __init__(self, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"gave up after {attempts} attempts{detail}")
