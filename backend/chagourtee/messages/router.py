"""Message router: history, send, edit and delete within a room.

Endpoints (all require a verified account):
    GET    /api/rooms/{room_id}/messages                  - Page of history
    POST   /api/rooms/{room_id}/messages                  - Send   -> message
    PATCH  /api/rooms/{room_id}/messages/{message_id}     - Edit   -> message_updated
    DELETE /api/rooms/{room_id}/messages/{message_id}     - Delete -> message_deleted
    POST   /api/rooms/{room_id}/messages/batch-delete     - Moderator bulk delete
                                                             -> messages_deleted

Events go to connections currently joined to the room.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from chagourtee.auth.dependencies import get_store, require_moderator, require_verified
from chagourtee.realtime.events import (
    MessageDeletedEvent,
    MessageEvent,
    MessagesDeletedEvent,
    MessageUpdatedEvent,
)
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.router import get_hub
from chagourtee.storage.schemas import Message, MessageBatchDelete, MessageCreate, User
from chagourtee.storage.service import ChatStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms/{room_id}/messages", tags=["messages"])


def _require_room(store: ChatStore, room_id: int) -> None:
    if store.get_room(room_id) is None:
        raise HTTPException(status_code=404, detail="Room not found")


def _get_editable_message(store: ChatStore, room_id: int, message_id: int, user: User) -> Message:
    """Fetch a message of ``room_id`` that ``user`` may modify.

    Authors may modify their own messages; moderators may modify any.
    """
    message = store.get_message(message_id)
    if message is None or message.room_id != room_id:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.user_id != user.id and not user.is_moderator:
        raise HTTPException(status_code=403, detail="Not allowed to modify this message")
    return message


@router.get("")
async def list_messages(
    room_id: int,
    before: Optional[int] = Query(None, description="Only messages with a smaller id"),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_verified),
    store: ChatStore = Depends(get_store),
) -> List[Message]:
    """Return up to ``limit`` messages, oldest first."""
    _require_room(store, room_id)
    return store.list_messages(room_id, before=before, limit=limit)


@router.post("", status_code=201)
async def send_message(
    room_id: int,
    body: MessageCreate,
    user: User = Depends(require_verified),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> Message:
    _require_room(store, room_id)
    message = store.add_message(room_id, user.id, body.body)
    delivered = await hub.broadcast_room(room_id, MessageEvent(message=message))
    logger.info(
        "[messages] %s posted %s in room %s (delivered to %d)",
        user.login, message.id, room_id, delivered,
    )
    return message


@router.patch("/{message_id}")
async def edit_message(
    room_id: int,
    message_id: int,
    body: MessageCreate,
    user: User = Depends(require_verified),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> Message:
    _get_editable_message(store, room_id, message_id, user)
    updated = store.update_message(message_id, body.body)
    await hub.broadcast_room(room_id, MessageUpdatedEvent(message=updated))
    return updated


@router.delete("/{message_id}")
async def delete_message(
    room_id: int,
    message_id: int,
    user: User = Depends(require_verified),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    _get_editable_message(store, room_id, message_id, user)
    store.delete_message(message_id)
    logger.info("[messages] %s deleted %s from room %s", user.login, message_id, room_id)
    await hub.broadcast_room(room_id, MessageDeletedEvent(messageId=message_id))
    return {"deleted": message_id}


@router.post("/batch-delete")
async def delete_messages(
    room_id: int,
    body: MessageBatchDelete,
    user: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Delete several messages of a room in one go.

    Ids that do not exist or belong to another room are ignored; the event
    lists only the ids actually removed.
    """
    _require_room(store, room_id)
    removed = store.delete_messages(room_id, body.messageIds)
    if removed:
        logger.info("[messages] %s deleted %d messages from room %s", user.login, len(removed), room_id)
        await hub.broadcast_room(room_id, MessagesDeletedEvent(messageIds=removed))
    return {"deleted": removed}
