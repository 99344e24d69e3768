"""Pydantic schemas for persisted chat records."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


UserRole = Literal["owner", "moderator", "member"]


class User(BaseModel):
    """A registered account."""
    id: int
    login: str
    role: UserRole = "member"
    verified: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_moderator(self) -> bool:
        return self.role in ("owner", "moderator")


class Session(BaseModel):
    """A login session keyed by the cookie value."""
    id: str
    user_id: int
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at < (now or datetime.utcnow())


class Room(BaseModel):
    id: int
    name: str
    created_by: int
    created_at: Optional[datetime] = None
    message_count: int = 0


class Message(BaseModel):
    """A persisted chat message as sent to clients."""
    id: int
    room_id: int
    user_id: int
    login: str = ""
    body: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=10000)


class MessageBatchDelete(BaseModel):
    messageIds: list[int] = Field(..., min_length=1)


class RoleUpdate(BaseModel):
    role: UserRole


class UserDeleteRequest(BaseModel):
    reason: str = "Account removed by administrator"


class VerificationDecision(BaseModel):
    userId: int
    message: str = "Your registration was rejected"


class RegisterRequest(BaseModel):
    login: str = Field(..., min_length=2, max_length=64)
    password: str = Field(..., min_length=1, max_length=1024)
    bootstrap: Optional[str] = None


class LoginRequest(BaseModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
