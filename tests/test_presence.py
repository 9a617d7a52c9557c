"""Tests for live presence, chat and fan-out."""

import json

import pytest

from tracker.live import Broadcaster, Connection, QueueConnection
from tracker.models import ServerEvent, ServerEventType


def events_of(connection: QueueConnection, event_type: ServerEventType) -> list:
    return [event for event in connection.drain() if event.event_type == event_type]


def frame(event_type: str, payload) -> str:
    return json.dumps({"eventType": event_type, "payload": payload})


class BrokenConnection(Connection):
    """Connection whose transport is gone."""

    async def send(self, event: ServerEvent):
        raise ConnectionResetError("socket closed")


class TestJoin:
    """Tests for joining the live map."""

    @pytest.mark.asyncio
    async def test_join_flow(self, hub, connect):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch("conn-a", frame("join", "alice"))
        a_events = a.drain()
        b_events = b.drain()

        assert [e.event_type for e in a_events] == [ServerEventType.CURRENT_USERS]
        assert [u["username"] for u in a_events[0].payload] == ["alice"]
        assert [e.event_type for e in b_events] == [ServerEventType.USER_JOINED]
        assert b_events[0].payload["id"] == "conn-a"
        assert b_events[0].payload["username"] == "alice"

        await hub.dispatch("conn-b", frame("join", "bob"))

        (current,) = events_of(b, ServerEventType.CURRENT_USERS)
        assert [u["username"] for u in current.payload] == ["alice", "bob"]
        (joined,) = events_of(a, ServerEventType.USER_JOINED)
        assert joined.payload["username"] == "bob"

    @pytest.mark.asyncio
    async def test_join_assigns_avatar(self, hub, connect, registry):
        connect("conn-a")
        await hub.dispatch("conn-a", frame("join", "  alice  "))

        user = registry.get("conn-a")
        assert user.username == "alice"
        assert user.avatar.endswith("conn-a")
        assert user.latitude is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username", ["", "   ", None, 42, "x" * 65])
    async def test_invalid_username(self, hub, connect, registry, username):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch("conn-a", frame("join", username))

        (error,) = a.drain()
        assert error.event_type == ServerEventType.ERROR
        assert "Username" in error.payload["error"]
        assert b.drain() == []
        assert "conn-a" not in registry


class TestLocation:
    """Tests for location updates."""

    @pytest.mark.asyncio
    async def test_location_goes_to_everyone_else(self, hub, connect, registry):
        a = connect("conn-a")
        b = connect("conn-b")
        await hub.dispatch("conn-a", frame("join", "alice"))
        a.drain()
        b.drain()

        await hub.dispatch(
            "conn-a", frame("locationUpdate", {"latitude": 47.6, "longitude": -122.3})
        )

        assert a.drain() == []
        (received,) = b.drain()
        assert received.event_type == ServerEventType.LOCATION_RECEIVED
        assert received.payload["id"] == "conn-a"
        assert received.payload["latitude"] == 47.6
        assert registry.get("conn-a").longitude == -122.3

    @pytest.mark.asyncio
    async def test_location_before_join_is_ignored(self, hub, connect, registry):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch(
            "conn-a", frame("locationUpdate", {"latitude": 1.0, "longitude": 2.0})
        )

        assert a.drain() == []
        assert b.drain() == []
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_out_of_range_location(self, hub, connect):
        a = connect("conn-a")
        await hub.dispatch("conn-a", frame("join", "alice"))
        a.drain()

        await hub.dispatch(
            "conn-a", frame("locationUpdate", {"latitude": 91, "longitude": 0})
        )

        (error,) = a.drain()
        assert error.event_type == ServerEventType.ERROR


class TestChat:
    """Tests for chat relay."""

    @pytest.mark.asyncio
    async def test_chat_reaches_everyone_including_sender(self, hub, connect):
        a = connect("conn-a")
        b = connect("conn-b")
        await hub.dispatch("conn-a", frame("join", "alice"))
        a.drain()
        b.drain()

        await hub.dispatch("conn-a", frame("chatMessage", "hi all"))

        for connection in (a, b):
            (message,) = connection.drain()
            assert message.event_type == ServerEventType.CHAT_MESSAGE_RECEIVED
            assert message.payload["message"] == "hi all"
            assert message.payload["user"]["username"] == "alice"
            assert message.payload["timestamp"]

    @pytest.mark.asyncio
    async def test_chat_before_join_uses_placeholder(self, hub, connect):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch("conn-a", frame("chatMessage", "anyone?"))

        for connection in (a, b):
            (message,) = connection.drain()
            assert message.payload["user"] == {"username": "Unknown", "avatar": ""}

    @pytest.mark.asyncio
    async def test_empty_chat_rejected(self, hub, connect):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch("conn-a", frame("chatMessage", "  "))

        (error,) = a.drain()
        assert error.event_type == ServerEventType.ERROR
        assert b.drain() == []


class TestDisconnect:
    """Tests for leaving the live map."""

    @pytest.mark.asyncio
    async def test_disconnect_after_join(self, hub, connect, registry, broadcaster):
        a = connect("conn-a")
        b = connect("conn-b")
        await hub.dispatch("conn-a", frame("join", "alice"))
        await hub.dispatch("conn-b", frame("join", "bob"))
        a.drain()
        b.drain()

        await hub.disconnect("conn-a")

        (gone,) = b.drain()
        assert gone.event_type == ServerEventType.USER_DISCONNECTED
        assert gone.payload == "conn-a"
        assert a.drain() == []
        assert [u.id for u in registry.snapshot()] == ["conn-b"]
        assert broadcaster.connection_ids == ["conn-b"]

    @pytest.mark.asyncio
    async def test_disconnect_without_join_is_silent(self, hub, connect, broadcaster):
        connect("conn-a")
        b = connect("conn-b")

        await hub.disconnect("conn-a")

        assert b.drain() == []
        assert len(broadcaster) == 1

    @pytest.mark.asyncio
    async def test_late_joiner_does_not_see_departed_user(self, hub, connect):
        connect("conn-a")
        await hub.dispatch("conn-a", frame("join", "alice"))
        await hub.disconnect("conn-a")

        c = connect("conn-c")
        await hub.dispatch("conn-c", frame("join", "carol"))

        (current,) = events_of(c, ServerEventType.CURRENT_USERS)
        assert [u["username"] for u in current.payload] == ["carol"]


class TestMalformedEvents:
    """Tests for frames that cannot be understood."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json",
        json.dumps({"eventType": "teleport", "payload": None}),
        json.dumps({"payload": "alice"}),
    ])
    async def test_error_goes_to_sender_only(self, hub, connect, raw):
        a = connect("conn-a")
        b = connect("conn-b")

        await hub.dispatch("conn-a", raw)

        (error,) = a.drain()
        assert error.event_type == ServerEventType.ERROR
        assert error.payload["error"]
        assert b.drain() == []


class TestBroadcaster:
    """Tests for Broadcaster delivery."""

    @pytest.mark.asyncio
    async def test_failed_connection_does_not_block_others(self):
        broadcaster = Broadcaster()
        healthy = QueueConnection("healthy")
        broadcaster.attach(BrokenConnection("broken"))
        broadcaster.attach(healthy)

        delivered = await broadcaster.broadcast(
            ServerEvent(event_type=ServerEventType.USER_DISCONNECTED, payload="x")
        )

        assert delivered == 1
        assert len(healthy.drain()) == 1
        assert broadcaster.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_full_outbox_counts_as_failure(self):
        broadcaster = Broadcaster()
        slow = QueueConnection("slow", maxsize=1)
        broadcaster.attach(slow)
        event = ServerEvent(event_type=ServerEventType.USER_DISCONNECTED, payload="x")

        assert await broadcaster.send_to("slow", event) is True
        assert await broadcaster.send_to("slow", event) is False

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self):
        broadcaster = Broadcaster()
        event = ServerEvent(event_type=ServerEventType.ERROR, payload={"error": "x"})

        assert await broadcaster.send_to("missing", event) is False

    @pytest.mark.asyncio
    async def test_receive_times_out(self):
        connection = QueueConnection("idle")

        assert await connection.receive(timeout=0.01) is None
