"""Realtime fanout tests — WebSocket subscription lifecycle.

Learn: two layers are tested here.
1. stream_events() with a scripted fake WebSocket — deterministic checks of
   every way a connection can end (client close, failed send, bus shutdown,
   cancellation) and that each unsubscribes exactly once.
2. The real /realtime route through Starlette's TestClient, with quotes
   posted over HTTP on the same app.
"""

import asyncio
import json
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from conftest import eventually
from qotd.db.gateway import PersistenceGateway
from qotd.events.bus import EventBus
from qotd.events.types import DB_UPDATES
from qotd.main import create_app
from qotd.realtime.websocket import stream_events


class FakeWebSocket:
    """Just enough of starlette's WebSocket for stream_events()."""

    def __init__(self, fail_sends: bool = False, fail_accept: bool = False):
        self.sent: list = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.closed_by_server = False
        self.fail_sends = fail_sends
        self.fail_accept = fail_accept

    async def accept(self):
        if self.fail_accept:
            raise RuntimeError("handshake failed")
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.fail_sends:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def send_text(self, data):
        await self.send_json(json.loads(data))

    async def receive_text(self):
        msg = await self.incoming.get()
        if msg is None:
            self.client_state = WebSocketState.DISCONNECTED
            raise WebSocketDisconnect(code=1000)
        return msg

    async def close(self, code: int = 1000):
        self.application_state = WebSocketState.DISCONNECTED
        self.closed_by_server = True

    def disconnect(self):
        self.incoming.put_nowait(None)

    @property
    def accepted(self) -> bool:
        return self.application_state == WebSocketState.CONNECTED


# ═══════════════════════════════════════════════════════════
# stream_events()
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stream_forwards_in_order_and_unsubscribes_on_close():
    bus = EventBus()
    ws = FakeWebSocket()
    task = asyncio.create_task(stream_events(ws, bus))
    await eventually(lambda: ws.accepted)
    assert bus.subscriber_count(DB_UPDATES) == 1

    bus.publish(DB_UPDATES, {"author": "A", "text": "1"})
    bus.publish(DB_UPDATES, {"author": "B", "text": "2"})
    await eventually(lambda: len(ws.sent) == 2)

    ws.disconnect()
    await asyncio.wait_for(task, timeout=1)

    assert ws.sent == [{"author": "A", "text": "1"}, {"author": "B", "text": "2"}]
    assert bus.subscriber_count(DB_UPDATES) == 0
    assert not ws.closed_by_server


@pytest.mark.asyncio
async def test_stream_answers_ping():
    bus = EventBus()
    ws = FakeWebSocket()
    task = asyncio.create_task(stream_events(ws, bus))
    await eventually(lambda: ws.accepted)

    ws.incoming.put_nowait("not json")
    ws.incoming.put_nowait(json.dumps({"type": "ping"}))
    await eventually(lambda: ws.sent == [{"type": "pong"}])

    ws.disconnect()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_failed_send_unsubscribes_without_affecting_others():
    bus = EventBus()
    other = bus.subscribe(DB_UPDATES)
    ws = FakeWebSocket(fail_sends=True)
    task = asyncio.create_task(stream_events(ws, bus))
    await eventually(lambda: ws.accepted)

    assert bus.publish(DB_UPDATES, {"author": "A", "text": "T"}) == 2
    await asyncio.wait_for(task, timeout=1)

    assert bus.subscriber_count(DB_UPDATES) == 1
    assert await other.get() == {"author": "A", "text": "T"}
    assert bus.publish(DB_UPDATES, {"author": "A", "text": "U"}) == 1


@pytest.mark.asyncio
async def test_bus_close_ends_stream_and_closes_socket():
    bus = EventBus()
    ws = FakeWebSocket()
    task = asyncio.create_task(stream_events(ws, bus))
    await eventually(lambda: ws.accepted)

    bus.close()
    await asyncio.wait_for(task, timeout=1)

    assert ws.closed_by_server


@pytest.mark.asyncio
async def test_cancelled_stream_unsubscribes():
    bus = EventBus()
    ws = FakeWebSocket()
    task = asyncio.create_task(stream_events(ws, bus))
    await eventually(lambda: ws.accepted)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert bus.subscriber_count(DB_UPDATES) == 0


@pytest.mark.asyncio
async def test_failed_accept_unsubscribes():
    bus = EventBus()
    with pytest.raises(RuntimeError):
        await stream_events(FakeWebSocket(fail_accept=True), bus)
    assert bus.subscriber_count(DB_UPDATES) == 0


# ═══════════════════════════════════════════════════════════
# /realtime over TestClient
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def live_client(settings):
    """TestClient running the full app, lifespan included."""
    gateway = PersistenceGateway.from_settings(settings)

    async def prepare():
        await gateway.bootstrap_schema()
        await gateway.close()

    asyncio.run(prepare())
    app = create_app(settings, gateway=gateway, bus=EventBus())
    with TestClient(app) as client:
        yield client


def _post(client, text, author="A"):
    resp = client.post("/quotes", json={"text": text, "author": author})
    assert resp.status_code == 200


def test_subscriber_receives_posted_quote(live_client):
    with live_client.websocket_connect("/realtime") as ws:
        _post(live_client, "first")
        _post(live_client, "second", author="B")
        assert ws.receive_json() == {"author": "A", "text": "first"}
        # The next frame is the next quote, not a duplicate.
        assert ws.receive_json() == {"author": "B", "text": "second"}


def test_frame_has_author_then_text(live_client):
    with live_client.websocket_connect("/realtime") as ws:
        _post(live_client, "hi", author="me")
        assert ws.receive_text() == json.dumps(
            {"author": "me", "text": "hi"}, separators=(",", ":")
        )


def test_late_subscriber_misses_earlier_quote(live_client):
    _post(live_client, "before")
    with live_client.websocket_connect("/realtime") as ws:
        _post(live_client, "after")
        assert ws.receive_json() == {"author": "A", "text": "after"}


def test_every_subscriber_receives_each_quote(live_client):
    with live_client.websocket_connect("/realtime") as ws1, \
            live_client.websocket_connect("/realtime") as ws2:
        _post(live_client, "shared")
        assert ws1.receive_json() == {"author": "A", "text": "shared"}
        assert ws2.receive_json() == {"author": "A", "text": "shared"}


def _wait_for_subscribers(client, expected, timeout=2.0):
    deadline = time.monotonic() + timeout
    while client.get("/health").json()["subscribers"] != expected:
        if time.monotonic() > deadline:
            raise AssertionError(f"expected {expected} subscribers")
        time.sleep(0.01)


def test_disconnected_subscriber_is_dropped(live_client):
    with live_client.websocket_connect("/realtime") as staying:
        with live_client.websocket_connect("/realtime"):
            _wait_for_subscribers(live_client, 2)

        _wait_for_subscribers(live_client, 1)
        _post(live_client, "after disconnect")
        assert staying.receive_json() == {"author": "A", "text": "after disconnect"}

    _wait_for_subscribers(live_client, 0)


def test_other_upgrade_paths_rejected(live_client):
    with pytest.raises(WebSocketDisconnect):
        with live_client.websocket_connect("/realtime/extra"):
            pass
    with pytest.raises(WebSocketDisconnect):
        with live_client.websocket_connect("/quotes"):
            pass


def test_connect_and_leave_without_frames(live_client):
    with live_client.websocket_connect("/realtime"):
        _wait_for_subscribers(live_client, 1)
    _wait_for_subscribers(live_client, 0)

    # The app keeps serving after the handler is torn down.
    _post(live_client, "still up")
