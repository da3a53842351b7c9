"""
Client-side reconciliation of fetched history and the live event stream.

The timeline is pure state: it never performs I/O, so it can be driven by
the live client, a UI layer or a test in exactly the same way.

Rules:
    - A fetched page replaces the list wholesale (oldest-first, as served).
    - Live messages are appended at the tail in arrival order, never sorted.
    - Identity is the message id; a message is never shown twice.
    - Between ``begin_sync()`` and the page arriving, live messages and
      annotation events are remembered so that a page resolved *after* them
      neither drops nor resurrects anything.
"""

from collections import OrderedDict
from typing import Iterable, List, Optional

from gridchat.schemas.chat import ChatMessageWithMember
from gridchat.schemas.events import LikeChanged, MessageDeleted, MessagePinned, NewMessage, RoomEvent


class MessageTimeline:
    def __init__(self, viewer_id: Optional[str] = None):
        self.viewer_id = viewer_id
        self._messages: "OrderedDict[str, ChatMessageWithMember]" = OrderedDict()
        self._syncing = False
        self._live_since_sync: "OrderedDict[str, ChatMessageWithMember]" = OrderedDict()
        self._deferred: List[RoomEvent] = []
        self.history_error: Optional[str] = None

    # ── Views ──

    @property
    def messages(self) -> List[ChatMessageWithMember]:
        return list(self._messages.values())

    @property
    def ids(self) -> List[str]:
        return list(self._messages)

    @property
    def syncing(self) -> bool:
        return self._syncing

    def get(self, message_id: str) -> Optional[ChatMessageWithMember]:
        return self._messages.get(message_id)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    # ── History ──

    def begin_sync(self) -> None:
        """Mark the moment of (re)joining; call before the history request is sent."""
        self._syncing = True
        self._live_since_sync.clear()
        self._deferred.clear()

    def seed(self, history: Iterable[ChatMessageWithMember]) -> None:
        """Replace the list with a fetched page, keeping live arrivals it does not contain."""
        fresh: "OrderedDict[str, ChatMessageWithMember]" = OrderedDict(
            (m.id, m) for m in history
        )
        for message_id, message in self._live_since_sync.items():
            if message_id not in fresh:
                fresh[message_id] = message
        self._finish_sync(fresh)
        self.history_error = None

    def fail_history(self, error: str) -> None:
        """History is unavailable: show only what arrived live, with an error flag."""
        self._finish_sync(OrderedDict(self._live_since_sync))
        self.history_error = error

    def _finish_sync(self, fresh: "OrderedDict[str, ChatMessageWithMember]") -> None:
        deferred = list(self._deferred)
        self._messages = fresh
        self._syncing = False
        self._live_since_sync.clear()
        self._deferred.clear()
        # The page may predate these; replaying keeps the newest state.
        for event in deferred:
            self._apply_annotation(event)

    # ── Live events ──

    def append_live(self, message: ChatMessageWithMember) -> bool:
        """Append a pushed message unless it is already shown."""
        if self._syncing:
            # Remembered even when already shown: the old list is about to go.
            self._live_since_sync.setdefault(message.id, message)
        if message.id in self._messages:
            return False
        self._messages[message.id] = message
        return True

    def apply(self, event: RoomEvent) -> bool:
        """Apply one room event; ``True`` if the visible list changed."""
        if isinstance(event, NewMessage):
            return self.append_live(event.message)
        if self._syncing:
            self._deferred.append(event)
        return self._apply_annotation(event)

    def _apply_annotation(self, event: RoomEvent) -> bool:
        if isinstance(event, MessageDeleted):
            self._live_since_sync.pop(event.message_id, None)
            return self._messages.pop(event.message_id, None) is not None

        message = self._messages.get(event.message_id)
        if message is None:
            return False

        if isinstance(event, LikeChanged):
            message.like_count = event.like_count
            if self.viewer_id is not None and event.member_id == self.viewer_id:
                message.is_liked_by_current_user = event.liked
            return True
        if isinstance(event, MessagePinned):
            message.is_pinned = event.is_pinned
            return True
        return False

