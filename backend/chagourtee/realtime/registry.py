"""In-memory registry of live realtime connections.

Tracks every admitted connection, indexed by id and by owning user. Room
membership is not stored separately: a connection's ``room_id`` *is* its
membership, so room views are computed from the records on every call.

Thread Safety:
    Designed for a single asyncio event loop. No method awaits, so a
    mutation is never observed half-done by another task. It is NOT safe
    to call from multiple threads without an external lock.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class DuplicateConnectionError(RuntimeError):
    """Raised when the same transport handle is admitted twice."""


@dataclass(eq=False)
class Connection:
    """One admitted transport session.

    Attributes:
        handle: The transport object (a Starlette ``WebSocket`` on the server).
        user_id: Owning user, fixed for the lifetime of the connection.
        room_id: Room the connection last joined, or ``None``.
        id: Stable opaque identifier used as the registry key.
    """
    handle: Any
    user_id: int
    room_id: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ConnectionRegistry:
    """Owns every ``Connection`` record for one process."""

    def __init__(self) -> None:
        # connection id -> Connection (insertion ordered)
        self._connections: Dict[str, Connection] = {}

        # user id -> {connection id -> Connection}
        self._by_user: Dict[int, Dict[str, Connection]] = {}

        # id(handle) -> connection id, to reject double admission
        self._by_handle: Dict[int, str] = {}

    def admit(self, handle: Any, user_id: int) -> Connection:
        """Register a new live connection for ``user_id``.

        Raises:
            DuplicateConnectionError: ``handle`` is already registered.
        """
        if id(handle) in self._by_handle:
            raise DuplicateConnectionError(f"Handle already admitted as {self._by_handle[id(handle)]}")

        connection = Connection(handle=handle, user_id=user_id)
        self._connections[connection.id] = connection
        self._by_user.setdefault(user_id, {})[connection.id] = connection
        self._by_handle[id(handle)] = connection.id
        return connection

    def set_room(self, connection_id: str, room_id: Optional[int]) -> Optional[Connection]:
        """Point a connection at ``room_id``, superseding any previous room.

        Room existence is not checked; a stale id just never matches a
        broadcast. Unknown connection ids are ignored.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return None
        connection.room_id = room_id
        return connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Unregister a connection. Returns the removed record, if any."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None

        self._by_handle.pop(id(connection.handle), None)
        user_connections = self._by_user.get(connection.user_id)
        if user_connections is not None:
            user_connections.pop(connection_id, None)
            if not user_connections:
                del self._by_user[connection.user_id]
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def is_online(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    def connections_for_user(self, user_id: int) -> List[Connection]:
        return list(self._by_user.get(user_id, {}).values())

    def connections_for_room(self, room_id: int) -> List[Connection]:
        return [c for c in self._connections.values() if c.room_id == room_id]

    def all_connections(self) -> List[Connection]:
        return list(self._connections.values())

    def user_count(self) -> int:
        return len(self._by_user)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections
