"""Keepalive responder: answer feed pings on the outbound side of the stream."""

from __future__ import annotations

from geyser_ingest.geyser_listener.models import SubscribeRequest, SubscribeRequestPing
from geyser_ingest.geyser_listener.transport import FeedSender
from geyser_ingest.ingest_logging import get_logger

logger = get_logger(__name__)

PING_ACK_ID = 1


class KeepaliveResponder:
    """
    Replies to Ping updates so load balancers that expect client pings keep the stream open.

    Send failures surface as TransportError from the sender and are not retried here.
    """

    def __init__(self, sender: FeedSender, ping_id: int = PING_ACK_ID) -> None:
        self._sender = sender
        self._request = SubscribeRequest(ping=SubscribeRequestPing(id=ping_id))
        self.replies_sent = 0

    async def respond(self) -> None:
        await self._sender.send(self._request)
        self.replies_sent += 1
        logger.debug("keepalive_ping_sent", ping_id=self._request.ping.id)
