"""WebSocket endpoint bridging browser sockets to the Realtime Gateway.

The gateway delivers synchronously; each socket gets an outbound queue that
a writer task drains, so a publish never waits on a slow client.
"""

import asyncio

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from orderflow.api.dependencies import get_engine
from orderflow.lifecycle.engine import OrderLifecycleEngine

logger = structlog.get_logger(__name__)

OUTBOUND_QUEUE_SIZE = 256

realtime_router = APIRouter(tags=["realtime"])


class QueuedConnection:
    """Thread-safe ``Connection``: frames are handed to the socket's loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = OUTBOUND_QUEUE_SIZE) -> None:
        self.loop = loop
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def send(self, message: str) -> None:
        self.loop.call_soon_threadsafe(self._enqueue, message)

    def _enqueue(self, message: str) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Realtime client is not reading, dropping frame")

    def close(self) -> None:
        self._open = False


async def _drain(websocket: WebSocket, connection: QueuedConnection) -> None:
    while connection.is_open:
        message = await connection.queue.get()
        await websocket.send_text(message)


async def stop_writer(writer: asyncio.Task) -> None:
    """Cancel the writer and wait for it, logging anything it died of."""
    writer.cancel()
    try:
        await writer
    except asyncio.CancelledError:
        return
    except Exception:
        logger.warning("Realtime writer failed", exc_info=True)


@realtime_router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, engine: OrderLifecycleEngine = Depends(get_engine)) -> None:
    await websocket.accept()
    connection = QueuedConnection(asyncio.get_running_loop())
    channels = engine.gateway.open(connection, dict(websocket.query_params))
    logger.debug("Realtime connection opened", channels=channels)
    writer = asyncio.create_task(_drain(websocket, connection))
    try:
        while True:
            raw = await websocket.receive_text()
            engine.gateway.handle_message(connection, raw)
    except WebSocketDisconnect:
        logger.debug("Realtime connection closed")
    finally:
        connection.close()
        engine.gateway.close(connection)
        await stop_writer(writer)
