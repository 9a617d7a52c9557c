"""
Fan-out of server events to connected viewers.

Each connection is a channel endpoint. The broadcaster only knows how to
hand events to channels; the transport (WebSocket, test harness) drains
them.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional
from loguru import logger

from tracker.models import ServerEvent, ServerEventType, TrackingResult


class Connection(ABC):
    """A viewer connection that can receive server events."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id

    @abstractmethod
    async def send(self, event: ServerEvent):
        """Deliver an event to this connection."""
        pass


class QueueConnection(Connection):
    """
    Connection backed by an outbound queue.

    A writer task on the transport side drains ``outbox``; a full queue
    counts as a failed delivery rather than blocking the broadcaster.
    """

    def __init__(self, connection_id: str, maxsize: int = 256):
        super().__init__(connection_id)
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def send(self, event: ServerEvent):
        self.outbox.put_nowait(event)

    async def receive(self, timeout: Optional[float] = None) -> Optional[ServerEvent]:
        """Next queued event, or None on timeout."""
        try:
            return await asyncio.wait_for(self.outbox.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> list[ServerEvent]:
        """Everything queued right now."""
        events = []
        while not self.outbox.empty():
            events.append(self.outbox.get_nowait())
        return events


class Broadcaster:
    """
    Delivers events to one, all, or all-but-one attached connections.

    A connection that fails to accept an event is logged and skipped;
    delivery to the others continues.
    """

    def __init__(self):
        self._connections: dict[str, Connection] = {}

        # Statistics
        self._delivered = 0
        self._failed = 0

    def attach(self, connection: Connection):
        self._connections[connection.connection_id] = connection

    def detach(self, connection_id: str) -> Optional[Connection]:
        return self._connections.pop(connection_id, None)

    @property
    def connection_ids(self) -> list[str]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._connections)

    async def _deliver(self, connection: Connection, event: ServerEvent) -> bool:
        try:
            await connection.send(event)
            self._delivered += 1
            return True
        except Exception as e:
            self._failed += 1
            logger.warning(
                f"Dropped {event.event_type.value} for {connection.connection_id}: {e!r}"
            )
            return False

    async def send_to(self, connection_id: str, event: ServerEvent) -> bool:
        """Deliver to a single connection."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await self._deliver(connection, event)

    async def broadcast(self, event: ServerEvent, exclude: Optional[str] = None) -> int:
        """
        Deliver to every attached connection except ``exclude``.

        Returns the number of connections that accepted the event.
        """
        # Snapshot; connections may come and go while we await
        targets = [
            connection for connection_id, connection in self._connections.items()
            if connection_id != exclude
        ]
        results = [await self._deliver(connection, event) for connection in targets]
        return sum(results)

    async def publish_tracking_update(self, result: TrackingResult) -> int:
        """Push a fresh tracking result to every viewer."""
        event = ServerEvent(
            event_type=ServerEventType.TRACKING_UPDATE,
            payload=result.to_payload(),
        )
        delivered = await self.broadcast(event)
        logger.debug(f"Tracking update for {result.tracking_number} sent to {delivered} viewer(s)")
        return delivered

    def get_stats(self) -> dict:
        return {
            "connections": len(self._connections),
            "delivered": self._delivered,
            "failed": self._failed,
        }
