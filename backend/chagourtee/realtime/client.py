"""Realtime client with heartbeat and automatic reconnection.

``RealtimeClient`` owns exactly one WebSocket to ``/ws`` at a time and
exposes a small publish/subscribe surface to application code:

    client = RealtimeClient("ws://localhost:3000/ws", cookie=session_id)
    client.add_message_handler(on_event)
    membership = RoomMembership(client)
    await client.connect()
    await membership.join(5)

State machine:
    DISCONNECTED -> CONNECTING -> OPEN -> DISCONNECTED (loop)
    close() moves to CLOSING and suppresses reconnection.

Reconnection:
    - close code 1000 or an intentional close(): stop
    - close code 4001 (session refused): stop, lost handlers get UNAUTHORIZED
    - anything else: wait min(base * 2**attempt, max) and reconnect; after
      ``max_reconnect_attempts`` failures, lost handlers get
      RECONNECT_EXHAUSTED (the "reload required" condition)

Room membership is connection-scoped on the server and is not replayed by
the transport. ``RoomMembership`` re-sends ``join`` from an open handler.
"""
import asyncio
import inspect
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

import websockets.exceptions
from websockets.asyncio.client import connect

from chagourtee.config import ClientSettings

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
UNAUTHORIZED_CLOSURE = 4001

Handler = Callable[..., Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class LostReason(str, Enum):
    """Why the client gave up on the connection for good."""
    UNAUTHORIZED = "unauthorized"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before reconnect number ``attempt`` (0-based), capped at ``cap``."""
    return min(base * (2 ** attempt), cap)


class RealtimeClient:
    """Single shared realtime connection with heartbeat and reconnect."""

    def __init__(
        self,
        url: str,
        *,
        cookie: Optional[str] = None,
        cookie_name: str = "chagourtee_sid",
        heartbeat_interval: float = 30.0,
        reconnect_base_delay: float = 3.0,
        reconnect_max_delay: float = 30.0,
        max_reconnect_attempts: int = 5,
        unauthorized_close_code: int = UNAUTHORIZED_CLOSURE,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
    ) -> None:
        if not url.startswith(("ws://", "wss://")):
            raise ValueError("url must start with 'ws://' or 'wss://'")

        self.url = url
        self.cookie = cookie
        self.cookie_name = cookie_name
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.unauthorized_close_code = unauthorized_close_code
        self._connector = connector or connect

        self.state = ConnectionState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._runner: Optional[asyncio.Task] = None
        self._heartbeat: Optional[asyncio.Task] = None
        self._attempts = 0
        self._closing = False

        self._message_handlers: List[Handler] = []
        self._open_handlers: List[Handler] = []
        self._lost_handlers: List[Handler] = []

    @classmethod
    def from_settings(cls, url: str, settings: ClientSettings, **kwargs: Any) -> "RealtimeClient":
        return cls(
            url,
            heartbeat_interval=settings.heartbeat_interval,
            reconnect_base_delay=settings.reconnect_base_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            **kwargs,
        )

    # =========================================================================
    # Public surface
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.OPEN and self._ws is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    def backoff_delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.reconnect_base_delay, self.reconnect_max_delay)

    async def connect(self) -> None:
        """Start the connection loop. No-op if it is already running."""
        if self._runner is not None and not self._runner.done():
            return
        self._closing = False
        self._attempts = 0
        self._runner = asyncio.create_task(self._run())

    async def wait_stopped(self) -> None:
        """Wait until the connection loop has given up or been closed."""
        if self._runner is not None:
            await asyncio.shield(self._runner)

    async def close(self) -> None:
        """Close intentionally (code 1000); no reconnection follows."""
        self._closing = True
        self.state = ConnectionState.CLOSING
        await self._stop_heartbeat()

        ws = self._ws
        if ws is not None:
            try:
                await ws.close(code=NORMAL_CLOSURE)
            except Exception as e:
                logger.debug("[Client] Error while closing: %s", e)

        runner = self._runner
        if runner is not None and not runner.done() and runner is not asyncio.current_task():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass

        self._runner = None
        self._ws = None
        self.state = ConnectionState.DISCONNECTED
        logger.info("[Client] Closed")

    async def send(self, payload: dict) -> bool:
        """Send a frame if the connection is open. Returns False otherwise."""
        ws = self._ws
        if ws is None or self.state != ConnectionState.OPEN:
            return False
        try:
            await ws.send(json.dumps(payload))
            return True
        except websockets.exceptions.ConnectionClosed:
            return False

    def add_message_handler(self, handler: Handler) -> None:
        if handler not in self._message_handlers:
            self._message_handlers.append(handler)

    def remove_message_handler(self, handler: Handler) -> None:
        if handler in self._message_handlers:
            self._message_handlers.remove(handler)

    def add_open_handler(self, handler: Handler) -> None:
        if handler not in self._open_handlers:
            self._open_handlers.append(handler)

    def remove_open_handler(self, handler: Handler) -> None:
        if handler in self._open_handlers:
            self._open_handlers.remove(handler)

    def add_lost_handler(self, handler: Handler) -> None:
        if handler not in self._lost_handlers:
            self._lost_handlers.append(handler)

    def remove_lost_handler(self, handler: Handler) -> None:
        if handler in self._lost_handlers:
            self._lost_handlers.remove(handler)

    # =========================================================================
    # Connection loop
    # =========================================================================

    async def _run(self) -> None:
        try:
            while True:
                code = await self._connect_once()
                if self._closing or code == NORMAL_CLOSURE:
                    return

                if code == self.unauthorized_close_code:
                    logger.warning("[Client] Session refused by server; not reconnecting")
                    await self._fan_out(self._lost_handlers, LostReason.UNAUTHORIZED)
                    return

                if self._attempts >= self.max_reconnect_attempts:
                    logger.error("[Client] Max reconnection attempts reached. Please reload.")
                    await self._fan_out(self._lost_handlers, LostReason.RECONNECT_EXHAUSTED)
                    return

                delay = self.backoff_delay(self._attempts)
                self._attempts += 1
                logger.warning(
                    "[Client] Disconnected (code=%s); reconnecting in %.1fs (%d/%d)",
                    code, delay, self._attempts, self.max_reconnect_attempts,
                )
                await asyncio.sleep(delay)
        finally:
            if not self._closing:
                self.state = ConnectionState.DISCONNECTED

    async def _connect_once(self) -> int:
        """Open one socket and pump it until it closes. Returns the close code."""
        await self._discard_socket()
        self.state = ConnectionState.CONNECTING
        try:
            ws = await self._connector(self.url, **self._connect_kwargs())
        except Exception as e:
            logger.warning("[Client] Connection to %s failed: %s", self.url, e)
            return ABNORMAL_CLOSURE

        if self._closing:
            await ws.close(code=NORMAL_CLOSURE)
            return NORMAL_CLOSURE

        self._ws = ws
        self.state = ConnectionState.OPEN
        self._attempts = 0
        logger.info("[Client] Connected to %s", self.url)
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(ws))
        await self._fan_out(self._open_handlers)

        try:
            async for raw in ws:
                await self._dispatch(raw)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            await self._stop_heartbeat()
            if self._ws is ws:
                self._ws = None
            if not self._closing:
                self.state = ConnectionState.DISCONNECTED

        return getattr(ws, "close_code", None) or ABNORMAL_CLOSURE

    def _connect_kwargs(self) -> dict:
        kwargs: dict = {"ping_interval": None}
        if self.cookie:
            kwargs["additional_headers"] = {"Cookie": f"{self.cookie_name}={self.cookie}"}
        return kwargs

    async def _discard_socket(self) -> None:
        """Tear down a leftover socket before a new one is created."""
        ws, self._ws = self._ws, None
        if ws is None:
            return
        try:
            await ws.close()
        except Exception as e:
            logger.debug("[Client] Error discarding previous socket: %s", e)

    # =========================================================================
    # Heartbeat
    # =========================================================================

    async def _heartbeat_loop(self, ws: Any) -> None:
        ping = json.dumps({"type": "ping"})
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self._ws is not ws or self.state != ConnectionState.OPEN:
                return
            try:
                await ws.send(ping)
            except websockets.exceptions.ConnectionClosed:
                logger.warning("[Client] Connection closed, stopping heartbeat")
                return

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat = self._heartbeat, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            logger.error("[Client] Dropping non-JSON frame: %.80r", raw)
            return
        if not isinstance(data, dict):
            return
        if data.get("type") == "pong":
            logger.debug("[Client] Received pong")
            return
        await self._fan_out(self._message_handlers, data)

    async def _fan_out(self, handlers: List[Handler], *args: Any) -> None:
        """Call each handler in registration order.

        Iterates over a snapshot; a handler removed by an earlier one in the
        same pass is skipped. A failing handler does not stop the others.
        """
        for handler in list(handlers):
            if handler not in handlers:
                continue
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("[Client] Handler %r failed", handler)


class RoomMembership:
    """Application-side record of the room the user is viewing.

    Re-sends ``join`` every time the shared connection opens, because the
    server forgets membership when a connection goes away.
    """

    def __init__(self, client: RealtimeClient) -> None:
        self.client = client
        self.room_id: Optional[int] = None
        client.add_open_handler(self._rejoin)

    async def join(self, room_id: int) -> bool:
        """Switch to ``room_id``; the join is sent now if open, else on open."""
        self.room_id = room_id
        return await self.client.send({"type": "join", "roomId": room_id})

    def leave(self) -> None:
        """Forget the room so it is not re-joined after a reconnect."""
        self.room_id = None

    async def typing(self) -> bool:
        if self.room_id is None:
            return False
        return await self.client.send({"type": "typing", "roomId": self.room_id})

    def detach(self) -> None:
        self.client.remove_open_handler(self._rejoin)

    async def _rejoin(self) -> None:
        if self.room_id is not None:
            await self.client.send({"type": "join", "roomId": self.room_id})
