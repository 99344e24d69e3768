"""Shared test fixtures and configuration for backend tests."""
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from chagourtee.config import AppSettings
from chagourtee.main import create_app
from chagourtee.realtime.hub import RealtimeHub
from chagourtee.realtime.sessions import SessionResolver
from chagourtee.storage.service import ChatStore

COOKIE_NAME = "chagourtee_sid"


class FakeHandle:
    """Stand-in for a server-side WebSocket.

    Records every frame it is sent (decoded) and the close call, and can be
    told to fail sends or to run a callback right before each send.
    """

    def __init__(self, fail: bool = False, on_send=None):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed = None
        self.fail = fail
        self.on_send = on_send

    async def send_text(self, data: str) -> None:
        if self.on_send is not None:
            self.on_send(self)
        if self.fail:
            raise RuntimeError("transport gone")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason=None) -> None:
        self.closed = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED

    def types(self):
        return [frame["type"] for frame in self.sent]


@pytest.fixture
def store():
    """Fresh in-memory store per test."""
    s = ChatStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def app(store):
    return create_app(settings=AppSettings(), store=store)


@pytest.fixture
def api_client(app):
    """Provide a TestClient for the app (lifespan included)."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def hub(store):
    """A standalone hub over the test store, for unit tests."""
    return RealtimeHub(SessionResolver(store))


@pytest.fixture
def make_handle():
    return FakeHandle


@pytest.fixture
def make_user(store):
    """Create a user with a live session.

    Returns:
        Callable returning ``(user, headers)`` where ``headers`` carries the
        session cookie for HTTP requests and WebSocket handshakes.
    """
    def _make(login, role="member", verified=True):
        user = store.create_user(login, role=role, verified=verified)
        session = store.create_session(user.id)
        return user, {"cookie": f"{COOKIE_NAME}={session.id}"}

    return _make


@pytest.fixture
def watch(app):
    """Register a fake realtime connection on the app's hub.

    Bypasses admission (no presence event) so endpoint tests only see the
    events the endpoint under test publishes.
    """
    def _watch(user_id, room_id=None):
        handle = FakeHandle()
        connection = app.state.hub.registry.admit(handle, user_id)
        if room_id is not None:
            app.state.hub.registry.set_room(connection.id, room_id)
        return handle

    return _watch
