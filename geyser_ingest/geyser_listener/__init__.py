"""
Geyser stream listener package.

Subscribes to a Geyser-style transaction feed over a websocket, decodes each
transaction update into a canonical record, answers keepalive pings, and
hands records to the persistence sink. One SessionManager.run() call covers
one connection; reconnecting is the supervisor's job (agent_worker).
"""

from geyser_ingest.geyser_listener.codec import decode, signature_bytes
from geyser_ingest.geyser_listener.dispatcher import DispatchStats, PersistFailurePolicy, UpdateDispatcher
from geyser_ingest.geyser_listener.keepalive import KeepaliveResponder
from geyser_ingest.geyser_listener.models import (
    CanonicalRecord,
    CommitmentLevel,
    InboundUpdate,
    SubscribeRequest,
    SubscriptionSpec,
    TransactionPayload,
    UpdateKind,
)
from geyser_ingest.geyser_listener.session import OutcomeKind, SessionManager, SessionOutcome
from geyser_ingest.geyser_listener.transport import WebsocketTransport

__all__ = [
    "CanonicalRecord",
    "CommitmentLevel",
    "DispatchStats",
    "InboundUpdate",
    "KeepaliveResponder",
    "OutcomeKind",
    "PersistFailurePolicy",
    "SessionManager",
    "SessionOutcome",
    "SubscribeRequest",
    "SubscriptionSpec",
    "TransactionPayload",
    "UpdateDispatcher",
    "UpdateKind",
    "WebsocketTransport",
    "decode",
    "signature_bytes",
]
