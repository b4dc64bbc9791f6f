"""
Tests for EventStream.

Connection state machine, room join, inbound validation and dedup, and the
reconnect refetch hook.
"""

from __future__ import annotations

import pytest

from dashboard.errors import ChannelError
from dashboard.services.event_stream import EventStream, LoopbackTransport, RoomIdentity
from dashboard.services.store import Store

pytestmark = pytest.mark.asyncio


@pytest.fixture
def store():
    return Store("return")


@pytest.fixture
def stream(transport, identity, store):
    return EventStream(transport, identity, store, dedup_window=50)


@pytest.fixture
def received(stream):
    events = []
    stream.subscribe("returnCreated", events.append)
    stream.subscribe("returnStatusUpdated", events.append)
    return events


def status_event(event_id="e1", status="approved", **extra):
    return {"eventId": event_id, "returnId": "r1", "status": status, **extra}


# ============================================================================
# Connection lifecycle
# ============================================================================


class TestLifecycle:
    async def test_connect(self, stream, store, transport):
        assert stream.state == "Disconnected"
        await stream.connect()
        assert stream.state == "Connected"
        assert store.state["connection"] == "Connected"
        assert transport.connected

    async def test_states_passed_through(self, stream, store):
        seen = []
        store.subscribe(lambda state, action: seen.append(state["connection"]))
        await stream.connect()
        assert seen == ["Connecting", "Connected"]

    async def test_join_room_on_connect(self, stream, transport):
        await stream.connect()
        assert transport.sent_named("joinRoom") == [{"role": "admin", "branchId": None, "userId": "u-admin"}]

    async def test_transport_disconnect(self, stream, store, transport):
        await stream.connect()
        await transport.simulate("disconnect", "transport close")
        assert stream.state == "Disconnected"
        assert store.state["connection"] == "Disconnected"
        assert store.state["connectionError"] == "disconnected: transport close"

    async def test_reconnect_cycle(self, stream, transport):
        await stream.connect()
        await transport.simulate("disconnect", "ping timeout")
        await transport.simulate("reconnect_attempt", 1)
        assert stream.state == "Reconnecting"
        await transport.simulate("reconnect_attempt", 2)
        assert stream.state == "Reconnecting"
        await transport.simulate("connect")
        assert stream.state == "Connected"
        assert len(transport.sent_named("joinRoom")) == 2

    async def test_reconnect_failed(self, stream, transport):
        await stream.connect()
        await transport.simulate("disconnect")
        await transport.simulate("reconnect_attempt", 1)
        await transport.simulate("reconnect_failed")
        assert stream.state == "Disconnected"

    async def test_connect_error_while_connecting(self, identity, store):
        transport = LoopbackTransport()
        transport.auto_connect = False
        stream = EventStream(transport, identity, store)

        await stream.connect()
        assert stream.state == "Connecting"
        await transport.simulate("connect_error", "xhr poll error")
        assert stream.state == "Reconnecting"
        assert stream.last_error == "connect error: xhr poll error"

    async def test_connect_failure_raises(self, identity, store):
        class Refusing(LoopbackTransport):
            async def connect(self):
                raise OSError("connection refused")

        stream = EventStream(Refusing(), identity, store)
        with pytest.raises(ChannelError):
            await stream.connect()
        assert stream.state == "Disconnected"

    async def test_local_disconnect_ignores_transport_retries(self, stream, transport):
        await stream.connect()
        await stream.disconnect()
        assert stream.state == "Disconnected"
        await transport.simulate("reconnect_attempt", 1)
        assert stream.state == "Disconnected"

    async def test_connected_hook_runs_on_every_connect(self, stream, transport):
        calls = []

        async def refetch():
            calls.append("refetch")

        stream.on_connected(refetch)
        await stream.connect()
        await transport.simulate("disconnect")
        await transport.simulate("reconnect_attempt", 1)
        await transport.simulate("connect")
        assert calls == ["refetch", "refetch"]


# ============================================================================
# Inbound
# ============================================================================


class TestInbound:
    async def test_event_delivered(self, stream, transport, received):
        await stream.connect()
        await transport.simulate("returnStatusUpdated", status_event())
        assert len(received) == 1
        assert received[0].returnId == "r1"
        assert received[0].status == "approved"

    async def test_duplicate_event_id_dropped(self, stream, transport, received):
        await stream.connect()
        await transport.simulate("returnStatusUpdated", status_event("e1"))
        await transport.simulate("returnStatusUpdated", status_event("e1"))
        assert len(received) == 1

    async def test_unstamped_redelivery_dropped(self, stream, transport, received):
        await stream.connect()
        body = {"returnId": "r1", "status": "approved", "timestamp": "2026-01-01T00:00:00Z"}
        await transport.simulate("returnStatusUpdated", dict(body))
        await transport.simulate("returnStatusUpdated", dict(body))
        assert len(received) == 1

    async def test_malformed_dropped(self, stream, transport, received):
        await stream.connect()
        await transport.simulate("returnStatusUpdated", {"eventId": "e1", "status": "approved"})
        await transport.simulate("returnCreated", {"eventId": "e2", "returnNumber": "RET-1"})
        await transport.simulate("returnStatusUpdated", "not a dict")
        assert received == []

    async def test_events_ignored_while_disconnected(self, stream, transport, received):
        await stream.connect()
        await transport.simulate("disconnect")
        await transport.simulate("returnStatusUpdated", status_event("late"))
        assert received == []

    async def test_events_ignored_before_connect(self, stream, received):
        assert stream.receive("returnStatusUpdated", status_event()) is False
        assert received == []

    async def test_task_assigned_nested_payload(self, stream, transport):
        seen = []
        stream.subscribe("taskAssigned", seen.append)
        await stream.connect()
        await transport.simulate(
            "taskAssigned",
            {"eventId": "t1", "data": {"orderId": "o1", "items": [{"_id": "o1-i1", "assignedTo": {"_id": "c1"}}]}},
        )
        assert seen[0].orderId == "o1"
        assert seen[0].items[0].id == "o1-i1"

    async def test_subscribe_unknown_kind(self, stream):
        with pytest.raises(ValueError):
            stream.subscribe("somethingElse", print)


# ============================================================================
# Outbound
# ============================================================================


class TestOutbound:
    async def test_emit_stamps_event_id(self, stream, transport):
        await stream.connect()
        assert await stream.emit("inventoryUpdated", {"branchId": "b1"})
        sent = transport.sent_named("inventoryUpdated")[0]
        assert sent["branchId"] == "b1"
        assert sent["eventId"]

    async def test_own_echo_dropped(self, stream, transport, received):
        await stream.connect()
        await stream.emit("returnStatusUpdated", {"returnId": "r1", "status": "approved"})
        echo = transport.sent_named("returnStatusUpdated")[0]
        await transport.simulate("returnStatusUpdated", echo)
        assert received == []

    async def test_emit_refused_while_disconnected(self, stream, transport):
        assert not await stream.emit("inventoryUpdated", {"branchId": "b1"})
        assert transport.sent == []


class TestRoomIdentity:
    async def test_chef(self):
        payload = RoomIdentity(role="chef", user_id="c1", branch_id=None).join_payload()
        assert payload["chefId"] == "c1"

    async def test_production(self):
        payload = RoomIdentity(role="production", user_id="p1", department_id="d1").join_payload()
        assert payload["departmentId"] == "d1"
        assert "chefId" not in payload

    async def test_branch(self):
        payload = RoomIdentity(role="branch", user_id="u1", branch_id="b1").join_payload()
        assert payload == {"role": "branch", "branchId": "b1", "userId": "u1"}
