"""Inbound frame parsing and dispatch.

Recognised intents:
    join    {roomId} -> move the connection into the room
    typing  {roomId} -> broadcast ``typing`` to that room (sender included)
    ping             -> reply ``pong`` to the sender only

There is no version negotiation on the wire, so anything else (invalid
JSON, non-object payloads, missing or unknown ``type``, bad ``roomId``) is
dropped without a reply and without closing the connection.
"""
import json
import logging
from typing import Optional, Union

from pydantic import ValidationError

from .broadcast import Broadcaster
from .events import INTENT_ADAPTER, JoinIntent, PingIntent, PongEvent, TypingEvent, TypingIntent
from .registry import Connection, ConnectionRegistry
from .sessions import SessionResolver

logger = logging.getLogger(__name__)

IntentType = Union[JoinIntent, TypingIntent, PingIntent]


def parse_frame(raw: Union[str, bytes]) -> Optional[IntentType]:
    """Parse one inbound frame into an intent, or None if it is not one."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        return None
    try:
        return INTENT_ADAPTER.validate_python(data)
    except ValidationError:
        return None


class ProtocolRouter:
    """Applies inbound intents to the registry and the broadcast engine."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        resolver: SessionResolver,
    ) -> None:
        self.registry = registry
        self.broadcaster = broadcaster
        self.resolver = resolver

    async def handle(self, connection: Connection, raw: Union[str, bytes]) -> Optional[IntentType]:
        """Handle one raw frame from ``connection``.

        Returns:
            The intent that was applied, or None if the frame was ignored.
        """
        intent = parse_frame(raw)
        if intent is None:
            logger.debug("[WS] Ignoring frame from connection %s: %.80r", connection.id, raw)
            return None

        try:
            if isinstance(intent, JoinIntent):
                previous = connection.room_id
                self.registry.set_room(connection.id, intent.roomId)
                if previous != intent.roomId:
                    logger.info(
                        "[WS] User %s connection %s joined room %s (was %s)",
                        connection.user_id, connection.id, intent.roomId, previous,
                    )
            elif isinstance(intent, TypingIntent):
                await self.broadcaster.broadcast_room(
                    intent.roomId,
                    TypingEvent(userId=connection.user_id, login=self._login(connection.user_id)),
                )
            elif isinstance(intent, PingIntent):
                await self.broadcaster.send(connection, PongEvent())
        except Exception:
            logger.exception("[WS] Error handling %s from connection %s", intent.type, connection.id)
        return intent

    def _login(self, user_id: int) -> str:
        user = self.resolver.describe(user_id)
        return user.login if user else str(user_id)
