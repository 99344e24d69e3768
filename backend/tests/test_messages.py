"""Tests for the message endpoints and the events they publish."""
import pytest


@pytest.fixture
def room(store):
    return store.get_room_by_name("main")


class TestSendAndList:

    def test_send_reaches_room_members_only(self, api_client, room, make_user, watch):
        alice, headers = make_user("alice")
        inside, outside = watch(user_id=99, room_id=room.id), watch(user_id=98, room_id=room.id + 100)

        response = api_client.post(f"/api/rooms/{room.id}/messages", json={"body": "hi"}, headers=headers)

        assert response.status_code == 201
        message = response.json()
        assert message["body"] == "hi"
        assert message["login"] == "alice"
        assert message["user_id"] == alice.id
        assert inside.types() == ["message"]
        assert inside.sent[0]["message"]["id"] == message["id"]
        assert outside.sent == []

    def test_unknown_room(self, api_client, make_user):
        _, headers = make_user("alice")

        response = api_client.post("/api/rooms/999/messages", json={"body": "hi"}, headers=headers)

        assert response.status_code == 404

    def test_empty_body_rejected(self, api_client, room, make_user):
        _, headers = make_user("alice")

        response = api_client.post(f"/api/rooms/{room.id}/messages", json={"body": ""}, headers=headers)

        assert response.status_code == 422

    def test_history_paging(self, api_client, store, room, make_user):
        alice, headers = make_user("alice")
        ids = [store.add_message(room.id, alice.id, f"m{i}").id for i in range(5)]

        latest = api_client.get(f"/api/rooms/{room.id}/messages?limit=2", headers=headers).json()
        older = api_client.get(
            f"/api/rooms/{room.id}/messages", params={"before": ids[3], "limit": 2}, headers=headers
        ).json()

        assert [m["id"] for m in latest] == ids[3:]
        assert [m["id"] for m in older] == ids[1:3]

    def test_unverified_cannot_post(self, api_client, room, make_user, watch):
        _, headers = make_user("newbie", verified=False)
        handle = watch(user_id=99, room_id=room.id)

        response = api_client.post(f"/api/rooms/{room.id}/messages", json={"body": "hi"}, headers=headers)

        assert response.status_code == 403
        assert handle.sent == []


class TestEditDelete:

    def test_author_edits(self, api_client, store, room, make_user, watch):
        alice, headers = make_user("alice")
        message = store.add_message(room.id, alice.id, "draft")
        handle = watch(user_id=99, room_id=room.id)

        response = api_client.patch(
            f"/api/rooms/{room.id}/messages/{message.id}", json={"body": "final"}, headers=headers
        )

        assert response.status_code == 200
        assert response.json()["updated_at"] is not None
        assert handle.types() == ["message_updated"]
        assert handle.sent[0]["message"]["body"] == "final"

    def test_other_member_cannot_edit_or_delete(self, api_client, store, room, make_user):
        alice, _ = make_user("alice")
        _, bob_headers = make_user("bob")
        message = store.add_message(room.id, alice.id, "mine")
        url = f"/api/rooms/{room.id}/messages/{message.id}"

        assert api_client.patch(url, json={"body": "yours"}, headers=bob_headers).status_code == 403
        assert api_client.delete(url, headers=bob_headers).status_code == 403
        assert store.get_message(message.id).body == "mine"

    def test_moderator_deletes_any(self, api_client, store, room, make_user, watch):
        alice, _ = make_user("alice")
        _, mod_headers = make_user("mod", role="moderator")
        message = store.add_message(room.id, alice.id, "oops")
        handle = watch(user_id=99, room_id=room.id)

        response = api_client.delete(f"/api/rooms/{room.id}/messages/{message.id}", headers=mod_headers)

        assert response.status_code == 200
        assert store.get_message(message.id) is None
        assert handle.sent == [{"type": "message_deleted", "messageId": message.id}]

    def test_message_of_another_room_is_not_found(self, api_client, store, room, make_user):
        alice, headers = make_user("alice")
        other = store.create_room("other", alice.id)
        message = store.add_message(other.id, alice.id, "elsewhere")

        response = api_client.delete(f"/api/rooms/{room.id}/messages/{message.id}", headers=headers)

        assert response.status_code == 404


class TestBatchDelete:

    def test_member_forbidden(self, api_client, room, make_user):
        _, headers = make_user("alice")

        response = api_client.post(
            f"/api/rooms/{room.id}/messages/batch-delete", json={"messageIds": [1]}, headers=headers
        )

        assert response.status_code == 403

    def test_moderator_batch_delete(self, api_client, store, room, make_user, watch):
        alice, _ = make_user("alice")
        _, mod_headers = make_user("mod", role="moderator")
        other = store.create_room("other", alice.id)
        a = store.add_message(room.id, alice.id, "a")
        b = store.add_message(room.id, alice.id, "b")
        foreign = store.add_message(other.id, alice.id, "c")
        handle = watch(user_id=99, room_id=room.id)

        response = api_client.post(
            f"/api/rooms/{room.id}/messages/batch-delete",
            json={"messageIds": [b.id, a.id, foreign.id]},
            headers=mod_headers,
        )

        assert response.json() == {"deleted": [a.id, b.id]}
        assert handle.sent == [{"type": "messages_deleted", "messageIds": [a.id, b.id]}]
        assert store.get_message(foreign.id) is not None

    def test_nothing_removed_publishes_nothing(self, api_client, room, make_user, watch):
        _, mod_headers = make_user("mod", role="moderator")
        handle = watch(user_id=99, room_id=room.id)

        response = api_client.post(
            f"/api/rooms/{room.id}/messages/batch-delete", json={"messageIds": [12345]}, headers=mod_headers
        )

        assert response.json() == {"deleted": []}
        assert handle.sent == []

    def test_empty_list_rejected(self, api_client, room, make_user):
        _, mod_headers = make_user("mod", role="moderator")

        response = api_client.post(
            f"/api/rooms/{room.id}/messages/batch-delete", json={"messageIds": []}, headers=mod_headers
        )

        assert response.status_code == 422
