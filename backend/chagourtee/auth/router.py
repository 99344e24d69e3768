"""Auth router for password login and the session cookie.

Endpoints:
    POST /api/auth/register  - Create an account and start a session
    POST /api/auth/login     - Start a session for an existing account
    POST /api/auth/logout    - End the current session
    GET  /api/auth/me        - The account behind the current session

The session cookie issued here is the one the ``/ws`` handshake and every
other HTTP route authenticate with. New accounts start unverified and wait
for a moderator; only the very first registration, when it carries the
configured bootstrap secret, becomes a verified owner.
"""
import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from chagourtee.config import SessionSettings
from chagourtee.storage.schemas import LoginRequest, RegisterRequest, User
from chagourtee.storage.service import ChatStore

from .dependencies import get_current_user, get_session_settings, get_store
from .passwords import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _start_session(
    response: Response, store: ChatStore, settings: SessionSettings, user: User
) -> None:
    ttl = timedelta(days=settings.ttl_days)
    session = store.create_session(user.id, ttl=ttl)
    response.set_cookie(
        settings.cookie_name,
        session.id,
        max_age=int(ttl.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.secure_cookie,
        samesite="lax",
    )


def _is_bootstrap(body: RegisterRequest, store: ChatStore, settings: SessionSettings) -> bool:
    if not settings.bootstrap_secret or not body.bootstrap:
        return False
    if store.count_users() > 0:
        return False
    return secrets.compare_digest(body.bootstrap.encode(), settings.bootstrap_secret.encode())


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    store: ChatStore = Depends(get_store),
    settings: SessionSettings = Depends(get_session_settings),
) -> dict:
    login = body.login.strip()
    if len(login) < 2:
        raise HTTPException(status_code=400, detail="Login too short")
    if store.get_user_by_login(login) is not None:
        raise HTTPException(status_code=409, detail="Login already taken")

    if _is_bootstrap(body, store, settings):
        user = store.create_user(
            login, role="owner", verified=True, password_hash=hash_password(body.password)
        )
        logger.info("[auth] Bootstrapped owner account %s (%s)", user.id, user.login)
    else:
        user = store.create_user(login, password_hash=hash_password(body.password))
        logger.info("[auth] Registered user %s (%s), awaiting verification", user.id, user.login)

    _start_session(response, store, settings, user)
    return {"user": user.model_dump(mode="json")}


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    store: ChatStore = Depends(get_store),
    settings: SessionSettings = Depends(get_session_settings),
) -> dict:
    user = store.get_user_by_login(body.login)
    if user is None or not verify_password(body.password, store.get_password_hash(user.id)):
        raise HTTPException(status_code=401, detail="Invalid login or password")

    _start_session(response, store, settings, user)
    logger.info("[auth] User %s (%s) logged in", user.id, user.login)
    return {"user": user.model_dump(mode="json")}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    user: User = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
    settings: SessionSettings = Depends(get_session_settings),
) -> dict:
    session_id = request.cookies.get(settings.cookie_name)
    if session_id:
        store.delete_session(session_id)
    response.delete_cookie(settings.cookie_name, path="/")
    logger.info("[auth] User %s (%s) logged out", user.id, user.login)
    return {"ok": True}


@router.get("/me")
async def me(user: User = Depends(get_current_user)) -> User:
    return user
