"""Room router: list, create, rename, delete and clear rooms.

Every mutation is committed to the store first and only then published
through the realtime hub:

    POST   /api/rooms                    -> room_created (everyone)
    PATCH  /api/rooms/{room_id}          -> room_updated (everyone)
    DELETE /api/rooms/{room_id}          -> room_deleted (everyone)
    DELETE /api/rooms/{room_id}/messages -> room_messages_cleared (room)
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from chagourtee.auth.dependencies import get_store, require_moderator, require_owner, require_verified
from chagourtee.realtime.events import (
    RoomCreatedEvent,
    RoomDeletedEvent,
    RoomMessagesClearedEvent,
    RoomUpdatedEvent,
)
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.router import get_hub
from chagourtee.storage.schemas import Room, RoomCreate, User
from chagourtee.storage.service import ChatStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rooms", tags=["rooms"])

MAIN_ROOM = "main"


def _get_room_or_404(store: ChatStore, room_id: int) -> Room:
    room = store.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@router.get("")
async def list_rooms(
    _: User = Depends(require_verified),
    store: ChatStore = Depends(get_store),
) -> List[Room]:
    """List all rooms with their message counts, oldest first."""
    return store.list_rooms()


@router.post("", status_code=201)
async def create_room(
    body: RoomCreate,
    user: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> Room:
    """Create a room and announce it to every connected client.

    Returns:
        The created room (201), or 409 if the name is taken.
    """
    if store.get_room_by_name(body.name) is not None:
        raise HTTPException(status_code=409, detail="Room name already exists")

    room = store.create_room(body.name, created_by=user.id)
    logger.info("[rooms] %s created room %s (%s)", user.login, room.id, room.name)
    await hub.broadcast_all(RoomCreatedEvent(room=room))
    return room


@router.patch("/{room_id}")
async def rename_room(
    room_id: int,
    body: RoomCreate,
    user: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> Room:
    room = _get_room_or_404(store, room_id)
    if room.name == MAIN_ROOM:
        raise HTTPException(status_code=400, detail="The main room cannot be renamed")
    existing = store.get_room_by_name(body.name)
    if existing is not None and existing.id != room_id:
        raise HTTPException(status_code=409, detail="Room name already exists")

    updated = store.rename_room(room_id, body.name)
    logger.info("[rooms] %s renamed room %s: %s -> %s", user.login, room_id, room.name, updated.name)
    await hub.broadcast_all(RoomUpdatedEvent(room=updated))
    return updated


@router.delete("/{room_id}")
async def delete_room(
    room_id: int,
    user: User = Depends(require_owner),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Delete a room and its messages.

    Connections still joined to the room keep their room id; it simply
    never matches a broadcast again.
    """
    room = _get_room_or_404(store, room_id)
    if room.name == MAIN_ROOM:
        raise HTTPException(status_code=400, detail="The main room cannot be deleted")

    store.delete_room(room_id)
    logger.info("[rooms] %s deleted room %s (%s)", user.login, room_id, room.name)
    await hub.broadcast_all(RoomDeletedEvent(roomId=room_id))
    return {"deleted": room_id}


@router.delete("/{room_id}/messages")
async def clear_room(
    room_id: int,
    user: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    _get_room_or_404(store, room_id)
    cleared = store.clear_room_messages(room_id)
    logger.info("[rooms] %s cleared %d messages from room %s", user.login, cleared, room_id)
    await hub.broadcast_room(room_id, RoomMessagesClearedEvent(roomId=room_id))
    return {"cleared": cleared}
