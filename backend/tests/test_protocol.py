"""Tests for inbound frame parsing and the protocol router."""
import json

import pytest

from chagourtee.realtime.events import JoinIntent, PingIntent, TypingIntent
from chagourtee.realtime.protocol import parse_frame


class TestParseFrame:

    def test_join(self):
        intent = parse_frame('{"type": "join", "roomId": 5}')
        assert isinstance(intent, JoinIntent)
        assert intent.roomId == 5

    def test_numeric_string_room_id(self):
        intent = parse_frame('{"type": "typing", "roomId": "7"}')
        assert isinstance(intent, TypingIntent)
        assert intent.roomId == 7

    def test_ping_ignores_extra_fields(self):
        assert isinstance(parse_frame('{"type": "ping", "at": 123}'), PingIntent)

    def test_bytes_frame(self):
        assert isinstance(parse_frame(b'{"type": "ping"}'), PingIntent)

    @pytest.mark.parametrize("raw", [
        "",
        "not json",
        "[1, 2, 3]",
        '"ping"',
        "null",
        "{}",
        '{"type": 5}',
        '{"type": "unknown"}',
        '{"type": "join"}',
        '{"type": "join", "roomId": "five"}',
        '{"type": "typing", "roomId": null}',
        '{"roomId": 5}',
    ])
    def test_not_an_intent(self, raw):
        assert parse_frame(raw) is None


class TestProtocolRouter:

    @pytest.mark.asyncio
    async def test_join_sets_room(self, hub, make_handle):
        connection = await hub.admit(make_handle(), user_id=1, login="alice")

        intent = await hub.router.handle(connection, json.dumps({"type": "join", "roomId": 5}))

        assert isinstance(intent, JoinIntent)
        assert connection.room_id == 5
        assert hub.room_size(5) == 1

    @pytest.mark.asyncio
    async def test_ping_replies_pong_to_sender_only(self, hub, make_handle):
        sender, other = make_handle(), make_handle()
        connection = await hub.admit(sender, user_id=1, login="alice")
        await hub.admit(other, user_id=2, login="bob")
        sender.sent.clear()
        other.sent.clear()

        await hub.router.handle(connection, '{"type": "ping"}')

        assert sender.sent == [{"type": "pong"}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_typing_goes_to_room_including_sender(self, hub, store, make_handle):
        alice = store.create_user("alice", verified=True)
        in_room, elsewhere = make_handle(), make_handle()
        a = await hub.admit(in_room, user_id=alice.id)
        b = await hub.admit(elsewhere, user_id=99, login="ghost")
        hub.registry.set_room(a.id, 5)
        hub.registry.set_room(b.id, 6)
        in_room.sent.clear()
        elsewhere.sent.clear()

        await hub.router.handle(a, '{"type": "typing", "roomId": 5}')

        assert in_room.sent == [{"type": "typing", "userId": alice.id, "login": "alice"}]
        assert elsewhere.sent == []

    @pytest.mark.asyncio
    async def test_garbage_is_ignored_silently(self, hub, make_handle):
        handle = make_handle()
        connection = await hub.admit(handle, user_id=1, login="alice")
        handle.sent.clear()

        for i in range(100):
            assert await hub.router.handle(connection, f'{{"type": "bogus-{i}", "n": {i}}}') is None

        assert handle.sent == []
        assert handle.closed is None
        assert connection.id in hub.registry

    @pytest.mark.asyncio
    async def test_delivery_error_is_contained(self, hub, make_handle):
        handle = make_handle(fail=True)
        connection = await hub.admit(handle, user_id=1, login="alice")

        intent = await hub.router.handle(connection, '{"type": "ping"}')

        assert isinstance(intent, PingIntent)
        assert connection.id in hub.registry
