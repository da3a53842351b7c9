"""
Broadcast channel: per-room fan-out of room events to live connections.

Delivery is at-most-once and best-effort: there is no replay buffer, so a
client that was not subscribed at publish time never sees the event and
recovers by re-fetching history.

Thread Safety:
    All methods are synchronous and run on the event loop thread, so the
    registry is never observed half-updated. ``publish`` enqueues into every
    subscriber's outbox in one pass without awaiting; each subscriber
    therefore receives events in publish order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Set

from gridchat.schemas.events import RoomEvent, encode_frame

if TYPE_CHECKING:
    from gridchat.services.connections import LiveConnection

logger = logging.getLogger(__name__)


class BroadcastChannel:
    def __init__(self) -> None:
        # room_id -> connections currently subscribed to it
        self._rooms: Dict[str, Set["LiveConnection"]] = {}

    def subscribe(self, room_id: str, connection: "LiveConnection") -> None:
        self._rooms.setdefault(room_id, set()).add(connection)

    def unsubscribe(self, room_id: str, connection: "LiveConnection") -> None:
        connections = self._rooms.get(room_id)
        if not connections:
            return
        connections.discard(connection)
        if not connections:
            del self._rooms[room_id]

    def subscribers(self, room_id: str) -> FrozenSet["LiveConnection"]:
        return frozenset(self._rooms.get(room_id, ()))

    def subscriber_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    @property
    def rooms(self) -> List[str]:
        return list(self._rooms)

    def publish(self, room_id: str, event: RoomEvent) -> int:
        """Hand ``event`` to every subscriber of ``room_id``.

        Returns how many connections accepted it. A room with no subscribers
        is a no-op. Subscribers whose outbox is full are dropped from the
        room; they close and reconcile on reconnect.
        """
        if event.chat_room_id != room_id:
            raise ValueError(
                f"Event for room {event.chat_room_id} published to room {room_id}"
            )

        connections = list(self._rooms.get(room_id, ()))
        if not connections:
            return 0

        frame = encode_frame(event)
        failed = [conn for conn in connections if not conn.deliver(frame)]
        for conn in failed:
            logger.warning(
                "Dropping connection %s from room %s: outbox full or closed",
                conn.id, room_id,
            )
            self.unsubscribe(room_id, conn)
        return len(connections) - len(failed)
