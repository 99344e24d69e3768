"""Tests for register / login / logout and the session cookie they issue."""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chagourtee.auth.passwords import hash_password, verify_password
from chagourtee.config import AppSettings
from chagourtee.main import create_app

COOKIE_NAME = "chagourtee_sid"


def session_headers(response):
    return {"cookie": f"{COOKIE_NAME}={response.cookies[COOKIE_NAME]}"}


@pytest.fixture
def alice(store):
    return store.create_user("alice", verified=True, password_hash=hash_password("wonderland"))


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("hunter2")

        assert hashed != "hunter2"
        assert verify_password("hunter2", hashed)
        assert not verify_password("hunter3", hashed)

    def test_missing_or_corrupt_hash_never_matches(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "not-an-argon2-hash")


class TestRegister:

    def test_new_account_is_unverified_member(self, api_client):
        response = api_client.post("/api/auth/register", json={"login": "newbie", "password": "pw"})

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["login"] == "newbie"
        assert user["role"] == "member"
        assert user["verified"] is False

        headers = session_headers(response)
        assert api_client.get("/api/auth/me", headers=headers).json()["login"] == "newbie"
        refused = api_client.get("/api/rooms", headers=headers)
        assert refused.status_code == 403
        assert refused.json()["detail"]["code"] == "ACCOUNT_NOT_VERIFIED"

    def test_login_taken(self, api_client, alice):
        response = api_client.post("/api/auth/register", json={"login": "alice", "password": "pw"})

        assert response.status_code == 409

    def test_login_too_short(self, api_client):
        assert api_client.post("/api/auth/register", json={"login": " a ", "password": "pw"}).status_code == 400
        assert api_client.post("/api/auth/register", json={"login": "a", "password": "pw"}).status_code == 422

    def test_approved_registration_notified_over_realtime(self, api_client, make_user):
        _, mod_headers = make_user("mod", role="moderator")
        response = api_client.post("/api/auth/register", json={"login": "newbie", "password": "pw"})
        newbie = response.json()["user"]

        with api_client.websocket_connect("/ws", headers=session_headers(response)) as ws:
            assert ws.receive_json()["type"] == "presence"
            approved = api_client.post(
                "/api/verification/approve", json={"userId": newbie["id"]}, headers=mod_headers
            )
            assert approved.status_code == 200
            assert ws.receive_json() == {"type": "user_verified", "userId": newbie["id"]}


class TestBootstrap:

    @pytest.fixture
    def bootstrap_client(self, store):
        app = create_app(settings=AppSettings(sessions={"bootstrap_secret": "letmein"}), store=store)
        with TestClient(app) as client:
            yield client

    def test_first_account_with_secret_becomes_owner(self, bootstrap_client):
        first = bootstrap_client.post(
            "/api/auth/register", json={"login": "admin", "password": "pw", "bootstrap": "letmein"}
        ).json()["user"]
        second = bootstrap_client.post(
            "/api/auth/register", json={"login": "late", "password": "pw", "bootstrap": "letmein"}
        ).json()["user"]

        assert (first["role"], first["verified"]) == ("owner", True)
        assert (second["role"], second["verified"]) == ("member", False)

    def test_wrong_secret_is_plain_registration(self, bootstrap_client):
        user = bootstrap_client.post(
            "/api/auth/register", json={"login": "admin", "password": "pw", "bootstrap": "guess"}
        ).json()["user"]

        assert (user["role"], user["verified"]) == ("member", False)

    def test_no_secret_configured(self, api_client):
        user = api_client.post(
            "/api/auth/register", json={"login": "admin", "password": "pw", "bootstrap": "letmein"}
        ).json()["user"]

        assert user["role"] == "member"


class TestLoginLogout:

    def test_login_then_open_realtime(self, api_client, alice):
        response = api_client.post("/api/auth/login", json={"login": "alice", "password": "wonderland"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == alice.id
        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "path=/" in set_cookie

        with api_client.websocket_connect("/ws", headers=session_headers(response)) as ws:
            frame = ws.receive_json()
        assert frame == {"type": "presence", "userId": alice.id, "login": "alice", "online": True}

    def test_bad_credentials(self, api_client, alice, make_user):
        make_user("nopassword")

        assert api_client.post(
            "/api/auth/login", json={"login": "alice", "password": "wrong"}
        ).status_code == 401
        assert api_client.post(
            "/api/auth/login", json={"login": "nobody", "password": "wonderland"}
        ).status_code == 401
        assert api_client.post(
            "/api/auth/login", json={"login": "nopassword", "password": "x"}
        ).status_code == 401

    def test_logout_ends_session(self, api_client, alice):
        headers = session_headers(
            api_client.post("/api/auth/login", json={"login": "alice", "password": "wonderland"})
        )

        assert api_client.post("/api/auth/logout", headers=headers).json() == {"ok": True}

        assert api_client.get("/api/auth/me", headers=headers).status_code == 401
        with api_client.websocket_connect("/ws", headers=headers) as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == 4001

    def test_logout_requires_session(self, api_client):
        assert api_client.post("/api/auth/logout").status_code == 401
