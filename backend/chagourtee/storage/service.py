"""DuckDB-backed chat store.

Persistent storage for users, login sessions, rooms and messages. The
realtime layer only reads from it (session and user lookups); the HTTP
routers write to it and broadcast afterwards.

Database Schema:
    users:    id, login, role, verified, password_hash, created_at
    sessions: id (cookie value), user_id, expires_at
    rooms:    id, name, created_by, created_at
    messages: id, room_id, user_id, body, created_at, updated_at

DuckDB has no ON DELETE CASCADE, so deletes of users and rooms remove
their dependent rows explicitly.

Thread Safety:
    One connection per store. Calls are made from the event loop thread;
    the store is not meant to be shared across worker processes.

Usage:
    store = ChatStore("data/chagourtee.db")
    user = store.create_user("alice", role="owner", verified=True)
    session = store.create_session(user.id)
"""
import logging
import secrets
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Sequence

import duckdb

from .schemas import Message, Room, Session, User

logger = logging.getLogger(__name__)

_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS rooms_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id         INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
        login      VARCHAR NOT NULL UNIQUE,
        role       VARCHAR NOT NULL DEFAULT 'member',
        verified   BOOLEAN NOT NULL DEFAULT FALSE,
        password_hash VARCHAR,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id         VARCHAR PRIMARY KEY,
        user_id    INTEGER NOT NULL,
        expires_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rooms (
        id         INTEGER DEFAULT nextval('rooms_seq') PRIMARY KEY,
        name       VARCHAR NOT NULL,
        created_by INTEGER NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id         INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        room_id    INTEGER NOT NULL,
        user_id    INTEGER NOT NULL,
        body       VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_room_id ON messages(room_id)",
]

_MESSAGE_SELECT = """
    SELECT m.id, m.room_id, m.user_id, COALESCE(u.login, ''), m.body,
           m.created_at, m.updated_at
    FROM messages m
    LEFT JOIN users u ON u.id = m.user_id
"""


class ChatStore:
    """Store for chat data in DuckDB.

    Attributes:
        _default_db_path: File used when no path is given.
    """

    _default_db_path: str = "data/chagourtee.db"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(self._db_path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("[ChatStore] Initialized with db=%s", self._db_path)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(
        self,
        login: str,
        role: str = "member",
        verified: bool = False,
        password_hash: Optional[str] = None,
    ) -> User:
        row = self._conn.execute(
            """
            INSERT INTO users (login, role, verified, password_hash, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id, login, role, verified, created_at
            """,
            [login.strip(), role, verified, password_hash, datetime.utcnow()],
        ).fetchone()
        return self._row_to_user(row)

    def count_users(self) -> int:
        (count,) = self._conn.execute("SELECT COUNT(*) FROM users").fetchone()
        return count

    def get_user_by_login(self, login: str) -> Optional[User]:
        row = self._conn.execute(
            "SELECT id, login, role, verified, created_at FROM users WHERE login = ?",
            [login.strip()],
        ).fetchone()
        return self._row_to_user(row) if row else None

    def get_password_hash(self, user_id: int) -> Optional[str]:
        """Stored password hash, or None for accounts without a password."""
        row = self._conn.execute(
            "SELECT password_hash FROM users WHERE id = ?", [user_id]
        ).fetchone()
        return row[0] if row else None

    def get_user(self, user_id: int) -> Optional[User]:
        row = self._conn.execute(
            "SELECT id, login, role, verified, created_at FROM users WHERE id = ?",
            [user_id],
        ).fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        rows = self._conn.execute(
            "SELECT id, login, role, verified, created_at FROM users ORDER BY created_at DESC"
        ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def list_pending_users(self) -> List[User]:
        rows = self._conn.execute(
            """
            SELECT id, login, role, verified, created_at FROM users
            WHERE NOT verified AND role = 'member'
            ORDER BY created_at ASC
            """
        ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def set_role(self, user_id: int, role: str) -> bool:
        result = self._conn.execute(
            "UPDATE users SET role = ? WHERE id = ? RETURNING id", [role, user_id]
        ).fetchone()
        return result is not None

    def set_verified(self, user_id: int, verified: bool = True) -> bool:
        result = self._conn.execute(
            "UPDATE users SET verified = ? WHERE id = ? RETURNING id", [verified, user_id]
        ).fetchone()
        return result is not None

    def delete_user(self, user_id: int) -> bool:
        """Delete a user with their sessions, messages and rooms."""
        self._conn.execute("DELETE FROM sessions WHERE user_id = ?", [user_id])
        self._conn.execute("DELETE FROM messages WHERE user_id = ?", [user_id])
        owned = self._conn.execute(
            "SELECT id FROM rooms WHERE created_by = ?", [user_id]
        ).fetchall()
        for (room_id,) in owned:
            self.delete_room(room_id)
        result = self._conn.execute(
            "DELETE FROM users WHERE id = ? RETURNING id", [user_id]
        ).fetchone()
        return result is not None

    # -----------------------------------------------------------------------
    # Sessions
    # -----------------------------------------------------------------------

    def create_session(self, user_id: int, ttl: timedelta = timedelta(days=7)) -> Session:
        session = Session(
            id=secrets.token_hex(32),
            user_id=user_id,
            expires_at=datetime.utcnow() + ttl,
        )
        self._conn.execute(
            "INSERT INTO sessions (id, user_id, expires_at) VALUES (?, ?, ?)",
            [session.id, session.user_id, session.expires_at],
        )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        row = self._conn.execute(
            "SELECT id, user_id, expires_at FROM sessions WHERE id = ?", [session_id]
        ).fetchone()
        if not row:
            return None
        return Session(id=row[0], user_id=row[1], expires_at=row[2])

    def delete_session(self, session_id: str) -> bool:
        result = self._conn.execute(
            "DELETE FROM sessions WHERE id = ? RETURNING id", [session_id]
        ).fetchone()
        return result is not None

    def delete_expired_sessions(self) -> int:
        result = self._conn.execute(
            "DELETE FROM sessions WHERE expires_at < ? RETURNING id", [datetime.utcnow()]
        ).fetchall()
        return len(result)

    # -----------------------------------------------------------------------
    # Rooms
    # -----------------------------------------------------------------------

    def create_room(self, name: str, created_by: int) -> Room:
        row = self._conn.execute(
            """
            INSERT INTO rooms (name, created_by, created_at) VALUES (?, ?, ?)
            RETURNING id, name, created_by, created_at
            """,
            [name.strip(), created_by, datetime.utcnow()],
        ).fetchone()
        return Room(id=row[0], name=row[1], created_by=row[2], created_at=row[3])

    def get_room(self, room_id: int) -> Optional[Room]:
        row = self._conn.execute(
            "SELECT id, name, created_by, created_at FROM rooms WHERE id = ?", [room_id]
        ).fetchone()
        if not row:
            return None
        return Room(id=row[0], name=row[1], created_by=row[2], created_at=row[3])

    def get_room_by_name(self, name: str) -> Optional[Room]:
        row = self._conn.execute(
            "SELECT id, name, created_by, created_at FROM rooms WHERE name = ?", [name.strip()]
        ).fetchone()
        if not row:
            return None
        return Room(id=row[0], name=row[1], created_by=row[2], created_at=row[3])

    def list_rooms(self) -> List[Room]:
        rows = self._conn.execute(
            """
            SELECT r.id, r.name, r.created_by, r.created_at,
                   (SELECT COUNT(*) FROM messages m WHERE m.room_id = r.id)
            FROM rooms r
            ORDER BY r.created_at ASC, r.id ASC
            """
        ).fetchall()
        return [
            Room(id=r[0], name=r[1], created_by=r[2], created_at=r[3], message_count=r[4])
            for r in rows
        ]

    def rename_room(self, room_id: int, name: str) -> Optional[Room]:
        result = self._conn.execute(
            "UPDATE rooms SET name = ? WHERE id = ? RETURNING id", [name.strip(), room_id]
        ).fetchone()
        return self.get_room(room_id) if result else None

    def delete_room(self, room_id: int) -> bool:
        self._conn.execute("DELETE FROM messages WHERE room_id = ?", [room_id])
        result = self._conn.execute(
            "DELETE FROM rooms WHERE id = ? RETURNING id", [room_id]
        ).fetchone()
        return result is not None

    def clear_room_messages(self, room_id: int) -> int:
        result = self._conn.execute(
            "DELETE FROM messages WHERE room_id = ? RETURNING id", [room_id]
        ).fetchall()
        return len(result)

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def add_message(self, room_id: int, user_id: int, body: str) -> Message:
        (message_id,) = self._conn.execute(
            """
            INSERT INTO messages (room_id, user_id, body, created_at)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            [room_id, user_id, body, datetime.utcnow()],
        ).fetchone()
        return self.get_message(message_id)

    def get_message(self, message_id: int) -> Optional[Message]:
        row = self._conn.execute(
            _MESSAGE_SELECT + " WHERE m.id = ?", [message_id]
        ).fetchone()
        return self._row_to_message(row) if row else None

    def list_messages(
        self, room_id: int, before: Optional[int] = None, limit: int = 50
    ) -> List[Message]:
        """Return up to ``limit`` messages older than ``before``, oldest first."""
        if before is not None:
            rows = self._conn.execute(
                _MESSAGE_SELECT + " WHERE m.room_id = ? AND m.id < ? ORDER BY m.id DESC LIMIT ?",
                [room_id, before, limit],
            ).fetchall()
        else:
            rows = self._conn.execute(
                _MESSAGE_SELECT + " WHERE m.room_id = ? ORDER BY m.id DESC LIMIT ?",
                [room_id, limit],
            ).fetchall()
        return [self._row_to_message(r) for r in reversed(rows)]

    def update_message(self, message_id: int, body: str) -> Optional[Message]:
        result = self._conn.execute(
            "UPDATE messages SET body = ?, updated_at = ? WHERE id = ? RETURNING id",
            [body, datetime.utcnow(), message_id],
        ).fetchone()
        return self.get_message(message_id) if result else None

    def delete_message(self, message_id: int) -> bool:
        result = self._conn.execute(
            "DELETE FROM messages WHERE id = ? RETURNING id", [message_id]
        ).fetchone()
        return result is not None

    def delete_messages(self, room_id: int, message_ids: Sequence[int]) -> List[int]:
        """Delete the given messages of one room; returns the ids actually removed."""
        if not message_ids:
            return []
        placeholders = ", ".join("?" for _ in message_ids)
        rows = self._conn.execute(
            f"DELETE FROM messages WHERE room_id = ? AND id IN ({placeholders}) RETURNING id",
            [room_id, *message_ids],
        ).fetchall()
        return sorted(r[0] for r in rows)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    @staticmethod
    def _row_to_user(row) -> User:
        return User(id=row[0], login=row[1], role=row[2], verified=bool(row[3]), created_at=row[4])

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row[0],
            room_id=row[1],
            user_id=row[2],
            login=row[3],
            body=row[4],
            created_at=row[5],
            updated_at=row[6],
        )
