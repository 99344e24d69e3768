"""User administration and registration verification.

Endpoints:
    GET    /api/users                   - List users (moderator)
    PATCH  /api/users/{user_id}/role    - Change role (owner)
    DELETE /api/users/{user_id}         - Delete account and kick (owner)
    POST   /api/users/{user_id}/verify  - Mark verified (moderator)
    GET    /api/verification/pending    - Accounts awaiting verification
    POST   /api/verification/approve    - Approve a pending account
    POST   /api/verification/reject     - Reject, delete and kick

Removal order: the account is deleted first, then the notice
(``user_deleted`` / ``user_rejected``) goes to the user's open tabs, which
stay registered until every one of them is closed with the kick close code.
Owners can be neither demoted nor deleted.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from chagourtee.auth.dependencies import get_store, require_moderator, require_owner
from chagourtee.realtime.events import (
    OutboundEvent,
    RoomDeletedEvent,
    UserDeletedEvent,
    UserRejectedEvent,
    UserVerifiedEvent,
)
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.router import get_hub
from chagourtee.storage.schemas import (
    RoleUpdate,
    User,
    UserDeleteRequest,
    VerificationDecision,
)
from chagourtee.storage.service import ChatStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])
verification_router = APIRouter(prefix="/api/verification", tags=["verification"])


def _get_user_or_404(store: ChatStore, user_id: int) -> User:
    user = store.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _remove_user(
    store: ChatStore,
    hub: RealtimeHub,
    user: User,
    notice: OutboundEvent,
    reason: str,
) -> None:
    """Delete ``user``, then notify and disconnect their tabs.

    Rooms created by the user are deleted with the account, so a
    ``room_deleted`` goes out for each of them as well.
    """
    owned_rooms = [r.id for r in store.list_rooms() if r.created_by == user.id]

    store.delete_user(user.id)
    await hub.broadcast_user(user.id, notice)
    kicked = await hub.kick_user(user.id, reason)
    for room_id in owned_rooms:
        await hub.broadcast_all(RoomDeletedEvent(roomId=room_id))
    logger.info(
        "[users] Removed user %s (%s): %d rooms, %d connections closed",
        user.id, user.login, len(owned_rooms), kicked,
    )


async def _verify(store: ChatStore, hub: RealtimeHub, user_id: int) -> User:
    _get_user_or_404(store, user_id)
    store.set_verified(user_id, True)
    await hub.broadcast_user(user_id, UserVerifiedEvent(userId=user_id))
    return store.get_user(user_id)


# =============================================================================
# /api/users
# =============================================================================


@router.get("")
async def list_users(
    _: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> List[dict]:
    """List users, newest first, with their current online state."""
    return [
        {**user.model_dump(mode="json"), "online": hub.is_online(user.id)}
        for user in store.list_users()
    ]


@router.patch("/{user_id}/role")
async def change_role(
    user_id: int,
    body: RoleUpdate,
    actor: User = Depends(require_owner),
    store: ChatStore = Depends(get_store),
) -> User:
    if user_id == actor.id:
        raise HTTPException(status_code=400, detail="Cannot change your own role")
    target = _get_user_or_404(store, user_id)
    if target.role == "owner" and body.role != "owner":
        raise HTTPException(status_code=403, detail="Cannot demote owner")
    store.set_role(user_id, body.role)
    logger.info("[users] %s set role of user %s to %s", actor.login, user_id, body.role)
    return store.get_user(user_id)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    body: Optional[UserDeleteRequest] = None,
    actor: User = Depends(require_owner),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Delete an account; its open tabs get ``user_deleted`` and are closed."""
    if user_id == actor.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")
    user = _get_user_or_404(store, user_id)
    if user.role == "owner":
        raise HTTPException(status_code=403, detail="Cannot delete owner")
    reason = (body or UserDeleteRequest()).reason

    await _remove_user(store, hub, user, UserDeletedEvent(userId=user_id, reason=reason), reason)
    return {"deleted": user_id}


@router.post("/{user_id}/verify")
async def verify_user(
    user_id: int,
    _: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> User:
    return await _verify(store, hub, user_id)


# =============================================================================
# /api/verification
# =============================================================================


@verification_router.get("/pending")
async def list_pending(
    _: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
) -> List[User]:
    return store.list_pending_users()


@verification_router.post("/approve")
async def approve(
    body: VerificationDecision,
    actor: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> User:
    user = await _verify(store, hub, body.userId)
    logger.info("[verification] %s approved user %s (%s)", actor.login, user.id, user.login)
    return user


@verification_router.post("/reject")
async def reject(
    body: VerificationDecision,
    actor: User = Depends(require_moderator),
    store: ChatStore = Depends(get_store),
    hub: RealtimeHub = Depends(get_hub),
) -> dict:
    """Reject a pending registration; the account is deleted."""
    user = _get_user_or_404(store, body.userId)
    if user.verified:
        raise HTTPException(status_code=400, detail="User is already verified")

    logger.info("[verification] %s rejected user %s (%s)", actor.login, user.id, user.login)
    await _remove_user(
        store, hub, user, UserRejectedEvent(userId=user.id, message=body.message), body.message
    )
    return {"rejected": user.id}
