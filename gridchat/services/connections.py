"""Live connection tracking for the chat WebSocket.

Each socket gets a :class:`LiveConnection` holding at most one room
subscription and a bounded outbox. The socket handler drains the outbox in a
writer task; the broadcast channel only ever enqueues, so a slow socket never
stalls a publish.

Per-connection states:
    UNSUBSCRIBED  initial; waits for ``join-chat-room``
    SUBSCRIBED    receives every event of ``room_id``; a new join switches rooms
    CLOSED        terminal; removed from all rooms, delivers nothing
"""

import asyncio
import itertools
import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError

from gridchat.config import settings
from gridchat.schemas.events import Joined, JoinChatRoom, LeaveChatRoom, encode_frame, inbound_frames
from gridchat.services.broadcast import BroadcastChannel

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"
    CLOSED = "closed"


class LiveConnection:
    def __init__(self, queue_size: int = settings.LIVE_QUEUE_SIZE) -> None:
        self.id = next(_connection_ids)
        self.state = ConnectionState.UNSUBSCRIBED
        self.room_id: Optional[str] = None
        # ``None`` is the close sentinel for the writer.
        self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue(maxsize=queue_size)

    def __repr__(self) -> str:
        return f"<LiveConnection {self.id} {self.state.value} room={self.room_id}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    def deliver(self, frame: Dict[str, Any]) -> bool:
        """Queue a frame for the socket. ``False`` if closed or the outbox is full."""
        if self.closed:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            self._terminate()
            return False
        return True

    async def next_frame(self) -> Optional[Dict[str, Any]]:
        """Next outbound frame, or ``None`` once the connection is closed."""
        if self.closed and self._outbox.empty():
            return None
        return await self._outbox.get()

    def pending(self) -> int:
        return self._outbox.qsize()

    def _terminate(self) -> None:
        self.state = ConnectionState.CLOSED
        self.room_id = None
        # Undelivered frames are discarded; the client re-fetches on reconnect.
        while not self._outbox.empty():
            self._outbox.get_nowait()
        self._outbox.put_nowait(None)


class ConnectionManager:
    """Routes inbound control frames and owns the room subscriptions of live sockets."""

    def __init__(self, channel: BroadcastChannel, queue_size: int = settings.LIVE_QUEUE_SIZE) -> None:
        self.channel = channel
        self.queue_size = queue_size
        self._connections: Dict[int, LiveConnection] = {}

    @property
    def active_count(self) -> int:
        return len(self._connections)

    def open(self) -> LiveConnection:
        connection = LiveConnection(self.queue_size)
        self._connections[connection.id] = connection
        logger.debug("Connection %s opened", connection.id)
        return connection

    def join(self, connection: LiveConnection, room_id: str) -> None:
        """Subscribe to ``room_id``, silently leaving any previous room."""
        if connection.closed:
            return
        if connection.room_id is not None and connection.room_id != room_id:
            self.channel.unsubscribe(connection.room_id, connection)
        connection.room_id = room_id
        connection.state = ConnectionState.SUBSCRIBED
        self.channel.subscribe(room_id, connection)
        if not connection.deliver(encode_frame(Joined(chat_room_id=room_id))):
            self.channel.unsubscribe(room_id, connection)
            return
        logger.debug("Connection %s joined room %s", connection.id, room_id)

    def leave(self, connection: LiveConnection) -> None:
        if connection.closed or connection.room_id is None:
            return
        self.channel.unsubscribe(connection.room_id, connection)
        connection.room_id = None
        connection.state = ConnectionState.UNSUBSCRIBED

    def close(self, connection: LiveConnection) -> None:
        """Remove every subscription of a socket that closed or errored."""
        if connection.room_id is not None:
            self.channel.unsubscribe(connection.room_id, connection)
        if not connection.closed:
            connection._terminate()
        self._connections.pop(connection.id, None)
        logger.debug("Connection %s closed", connection.id)

    def handle_text(self, connection: LiveConnection, text: str) -> None:
        """Apply one inbound frame. Malformed frames are logged and ignored."""
        try:
            frame = inbound_frames.validate_python(json.loads(text))
        except (ValueError, ValidationError) as exc:
            logger.warning("Ignoring malformed frame on connection %s: %s", connection.id, exc)
            return

        if isinstance(frame, JoinChatRoom):
            self.join(connection, frame.chat_room_id)
        elif isinstance(frame, LeaveChatRoom):
            self.leave(connection)
