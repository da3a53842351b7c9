"""Async chat client: one room, live updates, automatic reconnect.

On every (re)connect the client sends ``join-chat-room`` and, once the server
acknowledges it with ``joined``, fetches the latest history page over HTTP
while live frames keep arriving. The :class:`MessageTimeline` merges both
sources. Events published while the socket was down are never
replayed; the fresh fetch after reconnecting is what recovers them.

Typical use::

    async with ChatClient("http://localhost:8000", room_id, viewer_id=me) as client:
        runner = asyncio.create_task(client.run())
        await client.send_message("Box box!", member_id=me)
        ...
        await client.stop()
        await runner
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Union

import httpx
import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from gridchat.client.timeline import MessageTimeline
from gridchat.errors import TransientConnectionError
from gridchat.schemas.chat import ChatMessageOut, ChatMessageWithMember, LikeResult
from gridchat.schemas.events import JoinChatRoom, Joined, OutboundFrame, encode_frame, outbound_frames

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    """Passive indicator for the UI; never raised as an error."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


FrameListener = Callable[[OutboundFrame], Any]


class ChatClient:
    def __init__(
        self,
        base_url: str,
        room_id: str,
        viewer_id: Optional[str] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        connect: Callable[[str], Any] = websockets.connect,
        history_limit: Optional[int] = None,
        max_reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        join_timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.room_id = room_id
        self.viewer_id = viewer_id
        self.history_limit = history_limit
        self.max_reconnect_attempts = max(1, max_reconnect_attempts)
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.join_timeout = join_timeout

        self.timeline = MessageTimeline(viewer_id)
        self.status = ConnectionStatus.DISCONNECTED
        # Set each time a history fetch settles, successfully or not.
        self.history_ready = asyncio.Event()
        # Set once the server acknowledges the current join.
        self.joined = asyncio.Event()

        self._http = http or httpx.AsyncClient(base_url=self.base_url)
        self._owns_http = http is None
        self._connect = connect
        self._socket = None
        self._history_task: Optional[asyncio.Task] = None
        self._stopped = False
        self._listeners: List[FrameListener] = []

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
        await self.aclose()

    @property
    def ws_url(self) -> str:
        url = httpx.URL(self.base_url)
        scheme = "wss" if url.scheme == "https" else "ws"
        return str(url.copy_with(scheme=scheme, path="/ws"))

    @property
    def messages(self) -> List[ChatMessageWithMember]:
        return self.timeline.messages

    def add_listener(self, listener: FrameListener) -> None:
        """Call ``listener`` with every room event after the timeline applied it."""
        self._listeners.append(listener)

    # ── HTTP side ──

    async def fetch_history(self) -> List[ChatMessageWithMember]:
        params = {}
        if self.history_limit is not None:
            params["limit"] = self.history_limit
        if self.viewer_id:
            params["currentUserId"] = self.viewer_id
        resp = await self._http.get(f"/api/chat-rooms/{self.room_id}/messages", params=params)
        resp.raise_for_status()
        return [ChatMessageWithMember.model_validate(item) for item in resp.json()]

    async def send_message(
        self, body: str, member_id: str, reply_to: Optional[str] = None
    ) -> ChatMessageOut:
        """Send over HTTP. The message shows up in the timeline via the live echo."""
        resp = await self._http.post(
            f"/api/chat-rooms/{self.room_id}/messages",
            json={"message": body, "memberId": member_id, "replyToMessageId": reply_to},
        )
        resp.raise_for_status()
        return ChatMessageOut.model_validate(resp.json())

    async def like(self, message_id: str, member_id: str) -> LikeResult:
        resp = await self._http.post(f"/api/messages/{message_id}/like", json={"memberId": member_id})
        resp.raise_for_status()
        return LikeResult.model_validate(resp.json())

    async def unlike(self, message_id: str, member_id: str) -> LikeResult:
        resp = await self._http.request(
            "DELETE", f"/api/messages/{message_id}/like", json={"memberId": member_id}
        )
        resp.raise_for_status()
        return LikeResult.model_validate(resp.json())

    async def _load_history(self) -> None:
        # Anything committed after the ack is pushed live, so the page cannot miss it.
        try:
            await asyncio.wait_for(self.joined.wait(), self.join_timeout)
        except asyncio.TimeoutError:
            logger.warning("No join ack for room %s, fetching history anyway", self.room_id)

        try:
            history = await self.fetch_history()
        except (httpx.HTTPError, ValueError) as exc:
            # Live messages keep arriving; the list just lacks history.
            logger.warning("History fetch for room %s failed: %s", self.room_id, exc)
            self.timeline.fail_history(str(exc))
        else:
            self.timeline.seed(history)
        self.history_ready.set()

    # ── Live side ──

    def handle_frame(self, raw: Union[str, bytes]) -> Optional[OutboundFrame]:
        """Parse one server frame and apply it to the timeline."""
        try:
            frame = outbound_frames.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed frame: %s", exc)
            return None

        if isinstance(frame, Joined):
            if frame.chat_room_id == self.room_id:
                self.joined.set()
            return frame
        if frame.chat_room_id != self.room_id:
            return None

        self.timeline.apply(frame)
        for listener in self._listeners:
            listener(frame)
        return frame

    async def _join(self, socket) -> None:
        self.joined.clear()
        self.history_ready.clear()
        self.timeline.begin_sync()
        await socket.send(json.dumps(encode_frame(JoinChatRoom(chat_room_id=self.room_id))))

    async def _run_session(self) -> bool:
        """One socket lifetime. Returns whether the join frame got through."""
        joined = False
        try:
            async with self._connect(self.ws_url) as socket:
                self._socket = socket
                try:
                    await self._join(socket)
                    joined = True
                    self.status = ConnectionStatus.CONNECTED
                    self._history_task = asyncio.create_task(self._load_history())
                    async for raw in socket:
                        self.handle_frame(raw)
                except ConnectionClosed as exc:
                    raise TransientConnectionError(f"Live connection dropped: {exc}") from exc
        except (TransientConnectionError, ConnectionClosed) as exc:
            logger.info("Live connection to room %s lost: %s", self.room_id, exc)
        except (OSError, asyncio.TimeoutError, InvalidHandshake) as exc:
            logger.info("Could not connect to %s: %s", self.ws_url, exc)
        finally:
            self._socket = None
            if self._history_task is not None:
                self._history_task.cancel()
                await asyncio.gather(self._history_task, return_exceptions=True)
                self._history_task = None
        return joined

    def _backoff(self, attempts: int) -> float:
        return min(self.reconnect_delay * (2 ** attempts), self.max_reconnect_delay)

    async def run(self) -> None:
        """Stay subscribed until :meth:`stop` or until reconnecting keeps failing."""
        self._stopped = False
        self.status = ConnectionStatus.CONNECTING
        attempts = 0
        try:
            while not self._stopped:
                joined = await self._run_session()
                if self._stopped:
                    break
                attempts = 0 if joined else attempts + 1
                if attempts >= self.max_reconnect_attempts:
                    logger.warning(
                        "Giving up on room %s after %d failed reconnects", self.room_id, attempts
                    )
                    break
                self.status = ConnectionStatus.RECONNECTING
                await asyncio.sleep(self._backoff(attempts))
        finally:
            self.status = ConnectionStatus.DISCONNECTED

    async def stop(self) -> None:
        self._stopped = True
        if self._socket is not None:
            await self._socket.close()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
