"""WebSocket endpoint — live feed of accepted quotes.

Learn: Each client connects to /realtime. The handler:
1. Subscribes to the db.updates channel on the in-process EventBus
2. Accepts the connection
3. Forwards every published quote as a JSON text frame
4. Unsubscribes exactly once when the connection ends, however it ends

Upgrades to any other path never reach this module: the router finds no
matching route and closes them before accepting.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from qotd.events.bus import EventBus
from qotd.events.types import DB_UPDATES

logger = structlog.get_logger()
router = APIRouter()


@router.websocket("/realtime")
async def realtime_websocket(websocket: WebSocket):
    """WebSocket endpoint streaming every accepted quote."""
    await stream_events(websocket, websocket.app.state.bus)


async def stream_events(websocket: WebSocket, bus: EventBus, channel: str = DB_UPDATES):
    """Pump one channel into one WebSocket until either side goes away.

    Learn: Two concurrent tasks run:
    1. Forwarder — reads the consumer queue, sends to the WebSocket
    2. Client listener — reads from the WebSocket (answers pings, detects close)

    When either finishes (client disconnect, failed send, or the bus closing
    at shutdown) the other is cancelled, and the finally block unsubscribes.

    The subscription is registered before the handshake completes, so any
    quote published after the client sees the connection open reaches it.
    """
    consumer = bus.subscribe(channel)
    try:
        await websocket.accept()
        logger.info(
            "realtime.connected",
            consumer=consumer.id,
            subscribers=bus.subscriber_count(channel),
        )

        async def forward_events():
            """Forward bus events to the WebSocket client, in publish order."""
            try:
                async for event in consumer:
                    await websocket.send_json(event)
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.info("realtime.connection_error", consumer=consumer.id, error=repr(e))

        async def client_listener():
            """Handle incoming frames; returns when the client disconnects."""
            try:
                while True:
                    data = await websocket.receive_text()
                    try:
                        msg = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(msg, dict) and msg.get("type") == "ping":
                        await websocket.send_text(json.dumps({"type": "pong"}))
            except (WebSocketDisconnect, asyncio.CancelledError):
                pass
            except Exception as e:
                logger.info("realtime.connection_error", consumer=consumer.id, error=repr(e))

        forward_task = asyncio.create_task(forward_events())
        client_task = asyncio.create_task(client_listener())
        try:
            # Wait for either to finish (usually client disconnect)
            await asyncio.wait(
                [forward_task, client_task],
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            # Not awaited: each task absorbs its own cancellation.
            forward_task.cancel()
            client_task.cancel()
    finally:
        bus.unsubscribe(consumer)
        logger.info(
            "realtime.disconnected",
            consumer=consumer.id,
            subscribers=bus.subscriber_count(channel),
        )
        if (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        ):
            await websocket.close()
