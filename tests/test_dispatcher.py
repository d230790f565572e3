"""
Tests for the event dispatcher: per-connection state machine, disconnect
cascade and behaviour under concurrently arriving events.
"""

import asyncio
import logging

from monkeychat.runtime.dispatcher import ConnectionState


MATCH_REQUEST = {"type": "match-request"}


async def _pair(connect, dispatcher, a="A", b="B"):
    await connect(a, "u" + a, a.lower())
    await connect(b, "u" + b, b.lower())
    await dispatcher.handle(a, MATCH_REQUEST)
    await dispatcher.handle(b, MATCH_REQUEST)
    return dispatcher.rooms.room_of(a)


class TestJoin:
    async def test_join_acks_and_broadcasts_count_to_everyone(self, connect, dispatcher, sink):
        await connect("lurker")
        await connect("A", "uA", "alice")

        assert sink.types("A") == ["join-ack", "presence-count"]
        assert sink.inbox["A"][0].success is True
        assert sink.of_type("lurker", "presence-count")[-1].count == 1
        assert dispatcher.state_of("A") == ConnectionState.IDENTIFIED
        assert dispatcher.state_of("lurker") == ConnectionState.CONNECTED

    async def test_invalid_join_is_acked_with_failure(self, connect, dispatcher, sink):
        await connect("A")

        await dispatcher.handle("A", {"type": "join", "displayName": "no id"})

        ack, = sink.inbox["A"]
        assert ack.type == "join-ack"
        assert ack.success is False
        assert dispatcher.presence.count() == 0

    async def test_count_after_joins_and_leaves(self, connect, hangup, sink):
        for conn in ("A", "B", "C"):
            await connect(conn, "u" + conn)
        await hangup("B")

        for conn in ("A", "C"):
            assert sink.of_type(conn, "presence-count")[-1].count == 2

    async def test_rejoin_as_other_user_marks_previous_offline(self, connect, hangup, dispatcher, user_store):
        await connect("A", "u1")

        await dispatcher.handle("A", {"type": "join", "userId": "u2", "displayName": "bob"})
        await dispatcher.presence.drain()

        assert user_store.online == {"u1": False, "u2": True}
        assert dispatcher.presence.count() == 1

        await hangup("A")
        await dispatcher.presence.drain()
        assert user_store.online == {"u1": False, "u2": False}

    async def test_rejoin_keeps_previous_user_online_while_still_connected(self, connect, dispatcher, user_store):
        await connect("A", "u1")
        await connect("B", "u1")

        await dispatcher.handle("A", {"type": "join", "userId": "u2", "displayName": "bob"})
        await dispatcher.presence.drain()

        assert user_store.online == {"u1": True, "u2": True}

    async def test_rejoin_as_same_user_stays_online(self, connect, dispatcher, user_store):
        await connect("A", "u1", "alice")

        await dispatcher.handle("A", {"type": "join", "userId": "u1", "displayName": "alice2"})
        await dispatcher.presence.drain()

        assert user_store.online == {"u1": True}
        assert ("set_online", "u1", False) not in user_store.calls


class TestMatching:
    async def test_first_request_searches(self, connect, dispatcher, sink):
        await connect("A", "uA")
        sink.clear()

        await dispatcher.handle("A", MATCH_REQUEST)

        assert sink.types("A") == ["match-searching"]
        assert dispatcher.state_of("A") == ConnectionState.QUEUED

    async def test_second_request_pairs_both(self, connect, dispatcher, sink):
        room = await _pair(connect, dispatcher)

        assert set(room.members) == {"A", "B"}
        assert dispatcher.state_of("A") == ConnectionState.IN_ROOM
        assert dispatcher.state_of("B") == ConnectionState.IN_ROOM
        assert sink.of_type("A", "matched")[0].partner_name == "b"
        assert sink.of_type("B", "matched")[0].partner_name == "a"

    async def test_fifo_order(self, connect, dispatcher):
        for conn in ("A", "B", "C"):
            await connect(conn, "u" + conn)
        for conn in ("A", "B", "C"):
            await dispatcher.handle(conn, MATCH_REQUEST)

        assert set(dispatcher.rooms.room_of("A").members) == {"A", "B"}
        assert dispatcher.state_of("C") == ConnectionState.QUEUED

    async def test_repeat_request_while_queued_is_noop(self, connect, dispatcher, sink):
        await connect("A", "uA")
        await dispatcher.handle("A", MATCH_REQUEST)
        sink.clear()

        await dispatcher.handle("A", MATCH_REQUEST)

        assert sink.inbox["A"] == []
        assert dispatcher.queue.waiting() == ["A"]

    async def test_repeat_request_in_room_creates_nothing(self, connect, dispatcher, sink):
        await _pair(connect, dispatcher)
        await connect("C", "uC")
        await dispatcher.handle("C", MATCH_REQUEST)
        sink.clear()

        await dispatcher.handle("A", MATCH_REQUEST)

        assert len(dispatcher.rooms) == 1
        assert sink.of_type("A", "matched") == []
        assert sink.of_type("C", "matched") == []
        assert dispatcher.state_of("C") == ConnectionState.QUEUED

    async def test_match_request_before_join_is_dropped(self, connect, dispatcher, sink, caplog):
        await connect("A")

        with caplog.at_level(logging.WARNING):
            await dispatcher.handle("A", MATCH_REQUEST)

        assert sink.inbox["A"] == []
        assert "A" not in dispatcher.queue
        assert "before join" in caplog.text

    async def test_cancel_search(self, connect, dispatcher, sink):
        await connect("A", "uA")
        await dispatcher.handle("A", MATCH_REQUEST)
        sink.clear()

        await dispatcher.handle("A", {"type": "match-cancel"})
        await dispatcher.handle("A", {"type": "match-cancel"})

        assert sink.types("A") == ["match-cancelled"]
        assert dispatcher.state_of("A") == ConnectionState.IDENTIFIED


class TestRoomEvents:
    async def test_message_and_signal_routing(self, connect, dispatcher, sink):
        room = await _pair(connect, dispatcher)
        sink.clear()

        await dispatcher.handle("A", {"type": "message-send", "roomId": room.room_id, "text": "hi"})
        await dispatcher.handle("A", {"type": "signal-offer", "roomId": room.room_id, "payload": {"sdp": "x"}})

        assert sink.types("A") == ["message-received"]
        assert sink.types("B") == ["message-received", "signal-offer"]
        assert sink.inbox["A"][0].id == sink.inbox["B"][0].id
        assert sink.inbox["B"][1].from_connection_id == "A"

    async def test_message_without_room_id_is_dropped(self, connect, dispatcher, sink):
        await _pair(connect, dispatcher)
        sink.clear()

        await dispatcher.handle("A", {"type": "message-send", "text": "hi"})

        assert sink.inbox == {"A": [], "B": []}

    async def test_room_leave_returns_both_to_identified(self, connect, dispatcher, sink):
        room = await _pair(connect, dispatcher)
        sink.clear()

        await dispatcher.handle("A", {"type": "room-leave", "roomId": room.room_id})

        assert sink.types("B") == ["partner-disconnected"]
        assert dispatcher.state_of("A") == ConnectionState.IDENTIFIED
        assert dispatcher.state_of("B") == ConnectionState.IDENTIFIED

        # skip flow: both can search again
        await dispatcher.handle("B", MATCH_REQUEST)
        await dispatcher.handle("A", MATCH_REQUEST)
        assert dispatcher.rooms.room_of("A") is dispatcher.rooms.room_of("B")

    async def test_unknown_event_type_is_dropped(self, connect, dispatcher, sink):
        await connect("A", "uA")
        sink.clear()

        await dispatcher.handle("A", {"type": "teleport"})

        assert sink.inbox["A"] == []


class TestDisconnect:
    async def test_partner_notified_once_and_room_removed(self, connect, hangup, dispatcher, sink):
        room = await _pair(connect, dispatcher)
        sink.clear()

        await hangup("A")
        await dispatcher.handle("B", {"type": "message-send", "roomId": room.room_id, "text": "hello?"})

        assert sink.types("B") == ["partner-disconnected", "presence-count"]
        assert sink.inbox["B"][-1].count == 1
        assert dispatcher.rooms.get(room.room_id) is None
        assert dispatcher.state_of("A") == ConnectionState.CLOSED
        assert dispatcher.state_of("B") == ConnectionState.IDENTIFIED

    async def test_queued_connection_is_dequeued(self, connect, hangup, dispatcher):
        await connect("A", "uA")
        await dispatcher.handle("A", MATCH_REQUEST)

        await hangup("A")
        await connect("B", "uB")
        await dispatcher.handle("B", MATCH_REQUEST)

        assert len(dispatcher.rooms) == 0
        assert dispatcher.queue.waiting() == ["B"]

    async def test_disconnect_is_idempotent(self, connect, hangup, dispatcher, sink):
        await connect("A", "uA")
        await connect("B", "uB")

        await hangup("A")
        sink.clear()
        await dispatcher.disconnect("A")

        assert sink.inbox["B"] == []

    async def test_marks_user_offline_after_last_connection(self, connect, hangup, dispatcher, user_store):
        await connect("A1", "u1")
        await connect("A2", "u1")

        await hangup("A1")
        await dispatcher.presence.drain()
        assert user_store.online["u1"] is True

        await hangup("A2")
        await dispatcher.presence.drain()
        assert user_store.online["u1"] is False
        assert ("touch_last_seen", "u1") in user_store.calls

    async def test_events_after_disconnect_are_ignored(self, connect, hangup, dispatcher):
        await connect("A", "uA")
        await hangup("A")

        await dispatcher.handle("A", MATCH_REQUEST)

        assert "A" not in dispatcher.queue


class TestConcurrency:
    async def test_concurrent_requests_pair_each_connection_once(self, connect, dispatcher, sink):
        conns = [f"c{i}" for i in range(10)]
        for conn in conns:
            await connect(conn, "u" + conn)

        await asyncio.gather(*(dispatcher.handle(c, MATCH_REQUEST) for c in conns))

        assert len(dispatcher.rooms) == 5
        assert len(dispatcher.queue) == 0
        for conn in conns:
            assert len(sink.of_type(conn, "matched")) == 1

    async def test_concurrent_disconnect_of_both_members(self, connect, dispatcher, sink):
        room = await _pair(connect, dispatcher)
        sink.clear()

        # sockets still attached: whoever goes second may hear about the first
        await asyncio.gather(dispatcher.disconnect("A"), dispatcher.disconnect("B"))

        notices = sink.of_type("A", "partner-disconnected") + sink.of_type("B", "partner-disconnected")
        assert len(notices) == 1
        assert dispatcher.rooms.get(room.room_id) is None
        assert dispatcher.presence.count() == 0

    async def test_disconnect_racing_match_requests(self, connect, dispatcher, hangup):
        for conn in ("A", "B", "C"):
            await connect(conn, "u" + conn)
        await dispatcher.handle("A", MATCH_REQUEST)

        await asyncio.gather(
            hangup("A"),
            dispatcher.handle("B", MATCH_REQUEST),
            dispatcher.handle("C", MATCH_REQUEST),
        )

        assert dispatcher.rooms.room_of("A") is None
        for room_id in list(dispatcher.rooms._rooms):
            assert "A" not in dispatcher.rooms.get(room_id).members
