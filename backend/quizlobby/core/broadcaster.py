"""
Session event broadcaster for live lobby channels.

Keeps a process-local routing table from lobby id to the connections
subscribed to it and fans events out to them. It never touches lobby
state; services mutate the store and hand the result here.

The table is not shared between processes. Running several server
instances requires sticky routing per lobby or a pub/sub bridge in
front of ``publish``.
"""

import logging
from typing import Dict, Protocol, Set

from quizlobby.core.events import LobbyEvent, encode_event

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can receive a text frame (e.g. a Starlette WebSocket)."""

    async def send_text(self, data: str) -> None:
        ...


class LobbyBroadcaster:
    """Manages live connections per lobby channel."""

    def __init__(self):
        self._channels: Dict[str, Set[Connection]] = {}
        self._closed = False

    def subscribe(self, lobby_id: str, connection: Connection) -> None:
        """Associate a live connection with a lobby's event channel."""
        if self._closed:
            raise RuntimeError("Broadcaster is closed")

        self._channels.setdefault(lobby_id, set()).add(connection)
        logger.debug(f"Connection subscribed to lobby {lobby_id} ({self.subscriber_count(lobby_id)} total)")

    def unsubscribe(self, lobby_id: str, connection: Connection) -> None:
        """Remove a connection from a lobby channel."""
        connections = self._channels.get(lobby_id)
        if connections is None:
            return

        connections.discard(connection)

        # Clean up empty channels
        if not connections:
            del self._channels[lobby_id]
        logger.debug(f"Connection unsubscribed from lobby {lobby_id}")

    def drop_channel(self, lobby_id: str) -> None:
        """Forget every subscription of a lobby (e.g. after deletion)."""
        self._channels.pop(lobby_id, None)

    def subscriber_count(self, lobby_id: str) -> int:
        return len(self._channels.get(lobby_id, ()))

    def channel_count(self) -> int:
        return len(self._channels)

    async def publish(self, lobby_id: str, event: LobbyEvent) -> int:
        """
        Deliver an event to every connection subscribed to a lobby.

        Delivery is best-effort: connections that fail to receive are
        dropped from the channel and must resync with a full fetch.

        Args:
            lobby_id: Lobby channel
            event: Event variant to send

        Returns:
            Number of connections the event was delivered to
        """
        connections = self._channels.get(lobby_id)
        if not connections:
            return 0

        # Convert message to JSON once
        message = encode_event(event)

        delivered = 0
        disconnected = []
        for connection in list(connections):
            try:
                await connection.send_text(message)
                delivered += 1
            except Exception as e:
                logger.debug(f"Dropping connection from lobby {lobby_id}: {e}")
                disconnected.append(connection)

        for connection in disconnected:
            self.unsubscribe(lobby_id, connection)

        logger.debug(f"Published {event.kind} to {delivered} connection(s) in lobby {lobby_id}")
        return delivered

    def close(self) -> None:
        """Tear down the routing table at shutdown."""
        self._channels.clear()
        self._closed = True
        logger.info("Lobby broadcaster closed")

    @property
    def closed(self) -> bool:
        return self._closed
