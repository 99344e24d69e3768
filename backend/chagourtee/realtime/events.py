"""Wire contract for the realtime connection.

Every frame is a JSON object with a ``type`` tag. Outbound events are
frozen pydantic models, built once by the caller and serialized once per
broadcast. Inbound intents form a discriminated union on ``type``; frames
that do not validate against it are not intents at all.

Client -> Server:
    join    {roomId}
    typing  {roomId}
    ping

Server -> Client:
    message, message_updated, message_deleted, messages_deleted, typing,
    room_created, room_updated, room_deleted, room_messages_cleared,
    user_deleted, user_verified, user_rejected, presence, pong
"""
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from chagourtee.storage.schemas import Message, Room


# =============================================================================
# Outbound events (server -> client)
# =============================================================================


class OutboundEvent(BaseModel):
    """Base for every server -> client frame."""
    model_config = ConfigDict(frozen=True)

    type: str

    def to_frame(self) -> str:
        return self.model_dump_json()


class MessageEvent(OutboundEvent):
    type: Literal["message"] = "message"
    message: Message


class MessageUpdatedEvent(OutboundEvent):
    type: Literal["message_updated"] = "message_updated"
    message: Message


class MessageDeletedEvent(OutboundEvent):
    type: Literal["message_deleted"] = "message_deleted"
    messageId: int


class MessagesDeletedEvent(OutboundEvent):
    type: Literal["messages_deleted"] = "messages_deleted"
    messageIds: List[int]


class TypingEvent(OutboundEvent):
    """Someone is typing. Recipients drop events carrying their own userId."""
    type: Literal["typing"] = "typing"
    userId: int
    login: str


class RoomCreatedEvent(OutboundEvent):
    type: Literal["room_created"] = "room_created"
    room: Room


class RoomUpdatedEvent(OutboundEvent):
    type: Literal["room_updated"] = "room_updated"
    room: Room


class RoomDeletedEvent(OutboundEvent):
    type: Literal["room_deleted"] = "room_deleted"
    roomId: int


class RoomMessagesClearedEvent(OutboundEvent):
    type: Literal["room_messages_cleared"] = "room_messages_cleared"
    roomId: int


class UserDeletedEvent(OutboundEvent):
    type: Literal["user_deleted"] = "user_deleted"
    userId: int
    reason: str


class UserVerifiedEvent(OutboundEvent):
    type: Literal["user_verified"] = "user_verified"
    userId: int


class UserRejectedEvent(OutboundEvent):
    type: Literal["user_rejected"] = "user_rejected"
    userId: int
    message: str


class PresenceEvent(OutboundEvent):
    type: Literal["presence"] = "presence"
    userId: int
    login: str
    online: bool


class PongEvent(OutboundEvent):
    type: Literal["pong"] = "pong"


# =============================================================================
# Inbound intents (client -> server)
# =============================================================================


class JoinIntent(BaseModel):
    type: Literal["join"]
    roomId: int


class TypingIntent(BaseModel):
    type: Literal["typing"]
    roomId: int


class PingIntent(BaseModel):
    type: Literal["ping"]


Intent = Annotated[
    Union[JoinIntent, TypingIntent, PingIntent],
    Field(discriminator="type"),
]

INTENT_ADAPTER: TypeAdapter = TypeAdapter(Intent)
