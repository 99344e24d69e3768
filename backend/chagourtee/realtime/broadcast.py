"""Best-effort fan-out of outbound events to live connections.

Delivery contract:
    - at most once, no queue, no retry, no acknowledgement
    - sequential, in registry iteration order
    - a connection whose transport is not open is skipped silently
    - a failed write is logged and skipped; the loop carries on

Scopes are evaluated against live registry state. Because every write is
an ``await``, a connection may leave a room (or disconnect) part way
through a broadcast; each connection is therefore re-checked right before
its frame is written.
"""
import logging
from typing import Callable, Iterable

from starlette.websockets import WebSocketState

from .events import OutboundEvent
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)


def is_open(handle) -> bool:
    """Whether both sides of a WebSocket still consider it connected."""
    return (
        getattr(handle, "client_state", None) == WebSocketState.CONNECTED
        and getattr(handle, "application_state", None) == WebSocketState.CONNECTED
    )


class Broadcaster:
    """Delivers serialized events to the connections of a scope."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def broadcast_all(self, event: OutboundEvent) -> int:
        """Send ``event`` to every live connection."""
        return await self._deliver(event, self.registry.all_connections(), lambda c: True)

    async def broadcast_room(self, room_id: int, event: OutboundEvent) -> int:
        """Send ``event`` to connections currently joined to ``room_id``."""
        delivered = await self._deliver(
            event,
            self.registry.connections_for_room(room_id),
            lambda c: c.room_id == room_id,
        )
        logger.debug("[Broadcast] %s -> room %s (%d connections)", event.type, room_id, delivered)
        return delivered

    async def broadcast_user(self, user_id: int, event: OutboundEvent) -> int:
        """Send ``event`` once to each live connection owned by ``user_id``."""
        return await self._deliver(
            event,
            self.registry.connections_for_user(user_id),
            lambda c: c.user_id == user_id,
        )

    async def send(self, connection: Connection, event: OutboundEvent) -> bool:
        """Send ``event`` to a single connection."""
        if connection.id not in self.registry:
            return False
        return await self._safe_send(connection, event.to_frame())

    async def _deliver(
        self,
        event: OutboundEvent,
        candidates: Iterable[Connection],
        in_scope: Callable[[Connection], bool],
    ) -> int:
        frame = event.to_frame()
        delivered = 0
        for connection in candidates:
            if connection.id not in self.registry or not in_scope(connection):
                continue
            if await self._safe_send(connection, frame):
                delivered += 1
        return delivered

    async def _safe_send(self, connection: Connection, frame: str) -> bool:
        """Write one frame, swallowing transport errors.

        Returns:
            True if the frame was handed to the transport.
        """
        if not is_open(connection.handle):
            return False
        try:
            await connection.handle.send_text(frame)
            return True
        except Exception as e:
            logger.debug("Failed to send to connection %s: %s", connection.id, e)
            return False
