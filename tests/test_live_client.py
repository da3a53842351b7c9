"""Tests for the reconnecting chat client, with a scripted socket and HTTP transport."""
import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest
from websockets.exceptions import ConnectionClosedError

from gridchat.client.live import ChatClient, ConnectionStatus

ROOM = "room-1"
BASE_URL = "http://chat.test"


class FakeSocket:
    """Just enough of a websockets client connection for ChatClient."""

    def __init__(self, ack_joins=True):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.ack_joins = ack_joins

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def send(self, data):
        frame = json.loads(data)
        self.sent.append(frame)
        if self.ack_joins and frame["type"] == "join-chat-room":
            self.push({"type": "joined", "chatRoomId": frame["chatRoomId"]})

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.incoming.put_nowait(None)

    def push(self, frame):
        self.incoming.put_nowait(json.dumps(frame))

    def drop(self):
        self.incoming.put_nowait(ConnectionClosedError(None, None))


class ClosedOnSendSocket(FakeSocket):
    """Handshake succeeded but the connection is gone before the join goes out."""

    async def send(self, data):
        raise ConnectionClosedError(None, None)


def scripted_connect(*outcomes):
    """Each call returns (or raises) the next outcome; the last one repeats."""
    calls = []

    def connect(url):
        calls.append(url)
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    connect.calls = calls
    return connect


def message_payload(message_id, room_id=ROOM):
    return {
        "id": message_id,
        "chatRoomId": room_id,
        "memberId": "author",
        "message": f"body {message_id}",
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "member": {"id": "author", "displayName": "Author", "gamertag": "author"},
        "likeCount": 0,
        "isLikedByCurrentUser": False,
    }


def new_message_frame(message_id, room_id=ROOM):
    return {"type": "new-message", "chatRoomId": room_id, "message": message_payload(message_id, room_id)}


def history_transport(*pages, status_code=200):
    """Serve one page per history request; the last page repeats."""
    requests = []

    def handler(request):
        requests.append(request)
        page = pages[min(len(requests), len(pages)) - 1]
        return httpx.Response(status_code, json=page)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def make_client(transport, connect, **kwargs):
    http = httpx.AsyncClient(transport=transport, base_url=BASE_URL)
    return ChatClient(BASE_URL, ROOM, viewer_id="viewer", http=http, connect=connect, **kwargs)


def test_ws_url_follows_http_scheme():
    assert ChatClient("http://chat.test/", ROOM).ws_url == "ws://chat.test/ws"
    assert ChatClient("https://chat.test", ROOM).ws_url == "wss://chat.test/ws"


@pytest.mark.asyncio
async def test_joins_then_seeds_history_and_appends_live():
    socket = FakeSocket()
    transport = history_transport([message_payload("a"), message_payload("b")])
    client = make_client(transport, scripted_connect(socket))

    runner = asyncio.create_task(client.run())
    await asyncio.wait_for(client.history_ready.wait(), 2)

    assert client.status is ConnectionStatus.CONNECTED
    assert socket.sent == [{"type": "join-chat-room", "chatRoomId": ROOM}]
    assert client.timeline.ids == ["a", "b"]
    request = transport.requests[0]
    assert request.url.path == f"/api/chat-rooms/{ROOM}/messages"
    assert request.url.params["currentUserId"] == "viewer"

    socket.push(new_message_frame("c"))
    await wait_until(lambda: "c" in client.timeline)
    assert client.timeline.ids == ["a", "b", "c"]

    await client.stop()
    await asyncio.wait_for(runner, 2)
    assert client.status is ConnectionStatus.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_reconnect_refetches_history_to_recover_missed_messages():
    first, second = FakeSocket(), FakeSocket()
    # "b" was published while the client was disconnected.
    transport = history_transport(
        [message_payload("a")],
        [message_payload("a"), message_payload("b")],
    )
    connect = scripted_connect(first, second)
    client = make_client(transport, connect, reconnect_delay=0)
    runner = asyncio.create_task(client.run())

    await asyncio.wait_for(client.history_ready.wait(), 2)
    assert client.timeline.ids == ["a"]

    first.drop()
    await wait_until(lambda: len(connect.calls) == 2 and len(transport.requests) == 2)
    await asyncio.wait_for(client.history_ready.wait(), 2)

    assert second.sent == [{"type": "join-chat-room", "chatRoomId": ROOM}]
    assert client.timeline.ids == ["a", "b"]
    assert client.status is ConnectionStatus.CONNECTED

    second.push(new_message_frame("c"))
    await wait_until(lambda: "c" in client.timeline)

    await client.stop()
    await asyncio.wait_for(runner, 2)
    await client.aclose()


@pytest.mark.asyncio
async def test_gives_up_after_max_reconnect_attempts():
    connect = scripted_connect(OSError("connection refused"))
    client = make_client(history_transport([]), connect, max_reconnect_attempts=3, reconnect_delay=0)

    await asyncio.wait_for(client.run(), 2)

    assert len(connect.calls) == 3
    assert client.status is ConnectionStatus.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_drop_before_join_counts_as_failed_attempt():
    connect = scripted_connect(ClosedOnSendSocket())
    client = make_client(history_transport([]), connect, max_reconnect_attempts=2, reconnect_delay=0)

    await asyncio.wait_for(client.run(), 2)

    assert len(connect.calls) == 2
    assert client.status is ConnectionStatus.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_drop_before_join_recovers_on_next_connection():
    socket = FakeSocket()
    connect = scripted_connect(ClosedOnSendSocket(), socket)
    client = make_client(history_transport([message_payload("a")]), connect, reconnect_delay=0)
    runner = asyncio.create_task(client.run())

    await asyncio.wait_for(client.history_ready.wait(), 2)

    assert len(connect.calls) == 2
    assert socket.sent == [{"type": "join-chat-room", "chatRoomId": ROOM}]
    assert client.status is ConnectionStatus.CONNECTED
    assert client.timeline.ids == ["a"]

    await client.stop()
    await asyncio.wait_for(runner, 2)
    assert client.status is ConnectionStatus.DISCONNECTED
    await client.aclose()


@pytest.mark.asyncio
async def test_history_is_fetched_after_join_ack():
    socket = FakeSocket(ack_joins=False)
    transport = history_transport([message_payload("a")])
    client = make_client(transport, scripted_connect(socket))
    runner = asyncio.create_task(client.run())

    await wait_until(lambda: socket.sent)
    await asyncio.sleep(0.05)
    assert transport.requests == []
    assert not client.history_ready.is_set()

    socket.push({"type": "joined", "chatRoomId": ROOM})
    await asyncio.wait_for(client.history_ready.wait(), 2)
    assert len(transport.requests) == 1
    assert client.timeline.ids == ["a"]

    await client.stop()
    await asyncio.wait_for(runner, 2)
    await client.aclose()


@pytest.mark.asyncio
async def test_missing_join_ack_falls_back_to_fetching():
    socket = FakeSocket(ack_joins=False)
    transport = history_transport([message_payload("a")])
    client = make_client(transport, scripted_connect(socket), join_timeout=0.05)
    runner = asyncio.create_task(client.run())

    await asyncio.wait_for(client.history_ready.wait(), 2)
    assert client.timeline.ids == ["a"]

    await client.stop()
    await asyncio.wait_for(runner, 2)
    await client.aclose()


@pytest.mark.asyncio
async def test_failed_history_still_shows_live_messages():
    socket = FakeSocket()
    client = make_client(history_transport({"detail": "boom"}, status_code=500), scripted_connect(socket))
    runner = asyncio.create_task(client.run())

    await asyncio.wait_for(client.history_ready.wait(), 2)
    assert client.timeline.history_error is not None
    assert client.status is ConnectionStatus.CONNECTED

    socket.push(new_message_frame("live"))
    await wait_until(lambda: "live" in client.timeline)
    assert client.timeline.ids == ["live"]

    await client.stop()
    await asyncio.wait_for(runner, 2)
    await client.aclose()


@pytest.mark.asyncio
async def test_handle_frame_ignores_noise():
    client = make_client(history_transport([]), scripted_connect(FakeSocket()))
    seen = []
    client.add_listener(seen.append)

    assert client.handle_frame("not json") is None
    assert client.handle_frame(json.dumps({"type": "mystery"})) is None
    assert client.handle_frame(json.dumps(new_message_frame("x", room_id="other"))) is None
    assert client.handle_frame(json.dumps({"type": "joined", "chatRoomId": ROOM})).type == "joined"
    assert client.timeline.ids == []
    assert seen == []

    frame = client.handle_frame(json.dumps(new_message_frame("x")))
    assert frame.message.id == "x"
    assert client.timeline.ids == ["x"]
    assert seen == [frame]
    await client.aclose()


@pytest.mark.asyncio
async def test_send_and_like_go_over_http():
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path, json.loads(request.content or b"null")))
        if request.url.path.endswith("/like"):
            liked = request.method == "POST"
            return httpx.Response(200, json={"liked": liked, "likeCount": int(liked), "changed": True})
        payload = message_payload("new")
        del payload["member"], payload["likeCount"], payload["isLikedByCurrentUser"]
        return httpx.Response(201, json=payload)

    client = make_client(httpx.MockTransport(handler), scripted_connect(FakeSocket()))

    sent = await client.send_message("Box box!", member_id="viewer")
    assert sent.id == "new"
    result = await client.like("new", member_id="viewer")
    assert result.liked is True and result.like_count == 1
    result = await client.unlike("new", member_id="viewer")
    assert result.liked is False

    assert calls[0] == (
        "POST",
        f"/api/chat-rooms/{ROOM}/messages",
        {"message": "Box box!", "memberId": "viewer", "replyToMessageId": None},
    )
    assert calls[1][:2] == ("POST", "/api/messages/new/like")
    assert calls[2] == ("DELETE", "/api/messages/new/like", {"memberId": "viewer"})
    await client.aclose()
