"""
geyser_ingest — Solana transaction stream ingestion agent.

Keeps a Geyser-style transaction subscription open 24/7, decodes each
transaction update into a flat record (hash, signer, fee, timestamp) and
writes it idempotently to PostgreSQL. Transport failures are absorbed by a
reconnect supervisor with exponential backoff.
"""

__version__ = "0.1.0"
