"""Process-wide realtime hub.

One ``RealtimeHub`` is created per application and kept on ``app.state``.
It owns the connection registry and the broadcast engine, applies the
presence side effects of admission and removal, and is the only surface
the HTTP routers use to publish events (always after their store commit).
"""
import asyncio
import logging
from typing import Dict, Optional

from .broadcast import Broadcaster
from .events import OutboundEvent, PresenceEvent
from .protocol import ProtocolRouter
from .registry import Connection, ConnectionRegistry
from .sessions import SessionResolver

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Registry, broadcast engine and protocol router for one process."""

    def __init__(
        self,
        resolver: SessionResolver,
        *,
        unauthorized_close_code: int = 4001,
        kick_close_code: int = 4003,
    ) -> None:
        self.resolver = resolver
        self.unauthorized_close_code = unauthorized_close_code
        self.kick_close_code = kick_close_code

        self.registry = ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry)
        self.router = ProtocolRouter(self.registry, self.broadcaster, resolver)

        # user id -> login captured at admission, so the offline event can
        # still be labelled after the account is gone
        self._logins: Dict[int, str] = {}
        # presence events go out one at a time so no recipient sees a
        # user's online before the offline it supersedes
        self._presence_lock = asyncio.Lock()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def admit(self, handle, user_id: int, login: Optional[str] = None) -> Connection:
        """Register an authenticated connection and announce the user online."""
        connection = self.registry.admit(handle, user_id)
        if login is None:
            user = self.resolver.describe(user_id)
            login = user.login if user else str(user_id)
        self._logins[user_id] = login

        logger.info(
            "[Hub] User %s (%s) connected as %s; %d live connections",
            user_id, login, connection.id, len(self.registry),
        )
        async with self._presence_lock:
            await self.broadcaster.broadcast_all(PresenceEvent(userId=user_id, login=login, online=True))
        return connection

    async def release(self, connection: Connection) -> bool:
        """Unregister a connection; announce offline if it was the user's last.

        Safe to call more than once for the same connection.

        Returns:
            True if the user went offline as a result.
        """
        removed = self.registry.remove(connection.id)
        if removed is None:
            return False

        logger.info("[Hub] Connection %s of user %s closed", removed.id, removed.user_id)
        async with self._presence_lock:
            # re-checked under the lock: the user may have reconnected
            if self.registry.is_online(removed.user_id):
                return False
            login = self._logins.pop(removed.user_id, str(removed.user_id))
            await self.broadcaster.broadcast_all(
                PresenceEvent(userId=removed.user_id, login=login, online=False)
            )
        return True

    async def kick_user(self, user_id: int, reason: str = "") -> int:
        """Close every live connection of ``user_id`` with the kick close code."""
        closed = 0
        for connection in self.registry.connections_for_user(user_id):
            await self.release(connection)
            try:
                await connection.handle.close(code=self.kick_close_code, reason=reason[:120])
            except Exception as e:
                logger.debug("[Hub] Close of connection %s failed: %s", connection.id, e)
            closed += 1
        if closed:
            logger.info("[Hub] Kicked user %s (%d connections)", user_id, closed)
        return closed

    # =========================================================================
    # Collaborator interface for the HTTP layer
    # =========================================================================

    async def broadcast_all(self, event: OutboundEvent) -> int:
        return await self.broadcaster.broadcast_all(event)

    async def broadcast_room(self, room_id: int, event: OutboundEvent) -> int:
        return await self.broadcaster.broadcast_room(room_id, event)

    async def broadcast_user(self, user_id: int, event: OutboundEvent) -> int:
        return await self.broadcaster.broadcast_user(user_id, event)

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def room_size(self, room_id: int) -> int:
        return len(self.registry.connections_for_room(room_id))

    def is_online(self, user_id: int) -> bool:
        return self.registry.is_online(user_id)

    @property
    def connection_count(self) -> int:
        return len(self.registry)
