"""Realtime WebSocket endpoint.

    WebSocket /ws: one shared connection per browser tab.

Protocol Flow:
    1. Client connects with the session cookie.
       -> unknown / expired session: accepted then closed with 4001 "Unauthorized"
       -> otherwise admitted; ``presence{online: true}`` goes to everyone
    2. Client sends ``join{roomId}`` whenever it opens a room (and again
       after every reconnect)
    3. Client sends ``typing{roomId}`` and periodic ``ping``
       -> ``typing{userId, login}`` to the room, ``pong`` to the sender
    4. HTTP mutations publish room / user / global events through the hub
    5. On disconnect the connection is released; when it was the user's
       last one, ``presence{online: false}`` goes to everyone
"""
import logging

from fastapi import APIRouter, Depends, WebSocket
from starlette.requests import HTTPConnection

from .hub import RealtimeHub

logger = logging.getLogger(__name__)

router = APIRouter()


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    """Return the hub created for this application."""
    return conn.app.state.hub


@router.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket, hub: RealtimeHub = Depends(get_hub)) -> None:
    """Admit an authenticated client and pump its inbound frames."""
    user_id = hub.resolver.resolve(websocket.headers.get("cookie"))
    user = hub.resolver.describe(user_id) if user_id is not None else None

    await websocket.accept()
    if user is None:
        logger.warning("[WS] Refusing connection from %s: no valid session", websocket.client)
        await websocket.close(code=hub.unauthorized_close_code, reason="Unauthorized")
        return

    connection = await hub.admit(websocket, user.id, user.login)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await hub.router.handle(connection, raw)
    finally:
        await hub.release(connection)
