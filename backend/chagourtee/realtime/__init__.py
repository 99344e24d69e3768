"""Realtime fan-out: connection registry, protocol router, broadcast engine.

The server side is assembled by ``RealtimeHub`` and exposed at ``/ws`` by
``router``. ``RealtimeClient`` is the reconnecting client for the same
protocol.
"""

from .broadcast import Broadcaster
from .client import ConnectionState, LostReason, RealtimeClient, RoomMembership
from .hub import RealtimeHub
from .registry import Connection, ConnectionRegistry, DuplicateConnectionError
from .sessions import SessionResolver

__all__ = [
    "Broadcaster",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "DuplicateConnectionError",
    "LostReason",
    "RealtimeClient",
    "RealtimeHub",
    "RoomMembership",
    "SessionResolver",
]
