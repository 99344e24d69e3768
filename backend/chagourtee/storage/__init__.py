"""Persistence module for users, sessions, rooms and messages."""

from .schemas import Message, Room, Session, User
from .service import ChatStore

__all__ = [
    "ChatStore",
    "Message",
    "Room",
    "Session",
    "User",
]
