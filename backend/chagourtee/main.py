"""Chagourtee Backend Application.

Main entry point for the Chagourtee chat server: a multi-room chat with a
realtime fan-out channel alongside the HTTP API.

Modules:
    - realtime: WebSocket endpoint, connection registry, broadcast engine
    - rooms / messages: room and message CRUD, published through the hub
    - users: administration and registration verification
    - storage: DuckDB persistence for users, sessions, rooms and messages
    - auth: register / login / logout and session-cookie checks for HTTP routes
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chagourtee.auth.router import router as auth_router
from chagourtee.config import AppSettings, get_config
from chagourtee.messages.router import router as messages_router
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.router import router as realtime_router
from chagourtee.realtime.sessions import SessionResolver
from chagourtee.rooms.router import MAIN_ROOM
from chagourtee.rooms.router import router as rooms_router
from chagourtee.storage.service import ChatStore
from chagourtee.users.router import router as users_router
from chagourtee.users.router import verification_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in ("websockets", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = 0


def _attach_store(app: FastAPI, store: ChatStore, config: AppSettings) -> None:
    """Bind ``store`` to the app and build the realtime hub on top of it."""
    if store.get_room_by_name(MAIN_ROOM) is None:
        store.create_room(MAIN_ROOM, created_by=SYSTEM_USER_ID)
        logger.info("Created default room '%s'", MAIN_ROOM)

    resolver = SessionResolver(store, cookie_name=config.sessions.cookie_name)
    app.state.store = store
    app.state.hub = RealtimeHub(
        resolver,
        unauthorized_close_code=config.realtime.unauthorized_close_code,
        kick_close_code=config.realtime.kick_close_code,
    )


def create_app(settings: Optional[AppSettings] = None, store: Optional[ChatStore] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use instead of ``chagourtee.settings.yaml``.
        store: Pre-built store (tests pass ``ChatStore(":memory:")``). When
            omitted, the store is opened from ``database.path`` at startup.
    """
    config = settings or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Apply configured log level to root logger so that
        # `logging.level: "debug"` in chagourtee.settings.yaml activates DEBUG output.
        configured_level = getattr(logging, config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", config.logging.level.upper())

        owns_store = app.state.store is None
        if owns_store:
            _attach_store(app, ChatStore(config.database.path), config)

        purged = app.state.store.delete_expired_sessions()
        if purged:
            logger.info("Purged %d expired sessions", purged)

        logger.info(
            "Server running on http://%s:%s (realtime at /ws)",
            config.server.host, config.server.port,
        )

        yield  # Application runs here

        # Shutdown
        if owns_store:
            app.state.store.close()
            app.state.store = None
            app.state.hub = None
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Chagourtee API",
        description="Multi-room chat backend with realtime fan-out",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.store = None
    app.state.hub = None
    if store is not None:
        _attach_store(app, store, config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(realtime_router)
    app.include_router(rooms_router)
    app.include_router(messages_router)
    app.include_router(users_router)
    app.include_router(verification_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object with the number of live realtime connections.
        """
        hub = app.state.hub
        return {"status": "ok", "connections": hub.connection_count if hub else 0}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_config()
    uvicorn.run("chagourtee.main:app", host=_settings.server.host, port=_settings.server.port)
