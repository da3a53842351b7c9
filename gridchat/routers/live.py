"""
Live channel router: the single WebSocket every chat client shares.

Protocol:
    client → server   {"type": "join-chat-room", "chatRoomId": "..."}
                      {"type": "leave-chat-room"}
    server → client   {"type": "joined", "chatRoomId": "..."}
                      {"type": "new-message" | "message-deleted" |
                       "like-changed" | "message-pinned", "chatRoomId": ..., ...}

A socket is subscribed to at most one room; joining another room moves it.
Sending, liking and deleting go through the HTTP API, never this socket.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from gridchat.services.connections import ConnectionManager, LiveConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


async def _read_frames(websocket: WebSocket, manager: ConnectionManager, connection: LiveConnection) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text")
        if text is None and message.get("bytes") is not None:
            text = message["bytes"].decode("utf-8", errors="replace")
        if text is not None:
            manager.handle_text(connection, text)


async def _write_frames(websocket: WebSocket, connection: LiveConnection) -> None:
    while True:
        frame = await connection.next_frame()
        if frame is None:
            # Dropped as a slow consumer; the client reconnects and re-fetches.
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
            return
        await websocket.send_json(frame)


@router.websocket("/ws")
async def live_channel(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.connections
    await websocket.accept()
    connection = manager.open()

    reader = asyncio.create_task(_read_frames(websocket, manager, connection))
    writer = asyncio.create_task(_write_frames(websocket, connection))
    try:
        done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Connection %s ended with error: %r", connection.id, exc)
    finally:
        manager.close(connection)
        for task in (reader, writer):
            task.cancel()
        await asyncio.gather(reader, writer, return_exceptions=True)
