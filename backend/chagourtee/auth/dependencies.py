"""FastAPI dependencies for session authentication and role checks.

HTTP requests are authenticated with the same session cookie as the
realtime handshake, resolved by the hub's ``SessionResolver``.

    get_current_user  -> 401 when the cookie is missing, unknown or expired
    require_verified  -> 403 ACCOUNT_NOT_VERIFIED for unverified accounts
    require_moderator -> 403 unless owner or moderator
    require_owner     -> 403 unless owner
"""
import logging

from fastapi import Depends, HTTPException, Request
from starlette.requests import HTTPConnection

from chagourtee.config import SessionSettings
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.router import get_hub
from chagourtee.storage.schemas import User
from chagourtee.storage.service import ChatStore

logger = logging.getLogger(__name__)


def get_store(conn: HTTPConnection) -> ChatStore:
    """Return the store attached to this application."""
    return conn.app.state.store


def get_session_settings(conn: HTTPConnection) -> SessionSettings:
    return conn.app.state.settings.sessions


def get_current_user(request: Request, hub: RealtimeHub = Depends(get_hub)) -> User:
    user_id = hub.resolver.resolve(request.headers.get("cookie"))
    user = hub.resolver.describe(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_verified(user: User = Depends(get_current_user)) -> User:
    if not user.verified:
        logger.info("[auth] Unverified user %s refused", user.id)
        raise HTTPException(
            status_code=403,
            detail={"code": "ACCOUNT_NOT_VERIFIED", "message": "Account awaiting verification"},
        )
    return user


def require_moderator(user: User = Depends(require_verified)) -> User:
    if not user.is_moderator:
        raise HTTPException(status_code=403, detail="Moderator role required")
    return user


def require_owner(user: User = Depends(require_verified)) -> User:
    if user.role != "owner":
        raise HTTPException(status_code=403, detail="Owner role required")
    return user
