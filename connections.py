import asyncio
import json
import secrets
from typing import Dict, Iterator, Optional

from fastapi import WebSocket

from constants import CONNECTION_ID_BYTES, SEND_QUEUE_SIZE, SEND_TIMEOUT_SECONDS
from errors import DeliveryFailure
from logging_config import get_logger

logger = get_logger(__name__)


def new_connection_id() -> str:
    return secrets.token_hex(CONNECTION_ID_BYTES)


class Connection:
    """A live WebSocket plus its outbound queue.

    ``send`` only enqueues, so callers never wait on a slow receiver. A
    writer task drains the queue in order and writes each message to the
    socket.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None, queue_size: int = SEND_QUEUE_SIZE):
        self.connection_id = connection_id or new_connection_id()
        self.websocket = websocket
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None
        self._closed = False

    def start(self) -> None:
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._drain())

    def send(self, message: dict) -> None:
        if self._closed:
            raise DeliveryFailure(f"Connection {self.connection_id} is closed")
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            raise DeliveryFailure(f"Outbound queue full for connection {self.connection_id}")

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await asyncio.wait_for(self.websocket.send_text(json.dumps(message)), SEND_TIMEOUT_SECONDS)
                logger.debug(f"Sent {message.get('type')} to connection {self.connection_id}")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Error sending to connection {self.connection_id}: {e}")

    async def close(self) -> None:
        self._closed = True
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None


class ConnectionRegistry:
    """Connection id -> live connection handle. Pure bookkeeping."""

    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def register(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection
        logger.debug(f"Registered connection {connection.connection_id} (total: {len(self._connections)})")

    def unregister(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            logger.debug(f"Unregistered connection {connection_id} (total: {len(self._connections)})")
        return connection

    def get(self, connection_id: Optional[str]) -> Optional[Connection]:
        if connection_id is None:
            return None
        return self._connections.get(connection_id)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))
