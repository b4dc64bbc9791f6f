"""
Tests for NotificationProjector.

Which events reach the feed, dedup across redelivery, the new-entry callback
and per-route unread counts.
"""

from __future__ import annotations

import pytest

from dashboard.errors import ServerError
from dashboard.models.events import parse_event
from dashboard.services.action_coordinator import Outcome
from dashboard.services.event_stream import EventStream
from dashboard.services.notification_projector import NotificationProjector

NOW = "2026-07-01T08:00:00Z"


@pytest.fixture
def chimes():
    return []


@pytest.fixture
def projector(chimes):
    return NotificationProjector(role="admin", on_new=chimes.append, now=lambda: NOW)


class TestProjectEvent:
    def test_return_created(self, projector, chimes, make_return):
        event = parse_event("returnCreated", {**make_return("r1"), "eventId": "e1", "timestamp": NOW})
        added = projector.project_event(event)

        assert len(added) == 1
        entry = projector.notifications[0]
        assert entry["type"] == "success"
        assert entry["message"] == "New return RET-r1 from Branch b1"
        assert entry["data"]["returnId"] == "r1"
        assert entry["data"]["orderId"] == "o-r1"
        assert not entry["read"]
        assert chimes == [entry]

    def test_status_update(self, projector):
        event = parse_event("returnStatusUpdated", {"eventId": "e2", "returnId": "r1", "status": "processed"})
        projector.project_event(event)
        assert projector.notifications[0]["message"] == "Return r1 is now processed"
        assert projector.notifications[0]["createdAt"] == NOW

    def test_redelivery_yields_one_entry(self, projector, chimes):
        body = {"eventId": "e3", "orderId": "o1", "status": "approved", "timestamp": NOW}
        projector.project_event(parse_event("orderStatusUpdated", body))
        projector.project_event(parse_event("orderStatusUpdated", body))
        assert len(projector.notifications) == 1
        assert len(chimes) == 1

    def test_item_progress_not_projected(self, projector, chimes):
        event = parse_event("itemStatusUpdated", {"orderId": "o1", "itemId": "i1", "status": "in_progress"})
        assert projector.project_event(event) == []
        assert projector.notifications == []
        assert chimes == []

    def test_task_assigned_one_entry_per_item(self, projector):
        event = parse_event(
            "taskAssigned",
            {
                "eventId": "t1",
                "orderId": "o1",
                "orderNumber": "ORD-7",
                "items": [
                    {"_id": "i1", "assignedTo": {"name": "Sami"}, "product": {"name": "Baguette"}},
                    {"_id": "i2", "assignedTo": {"username": "lea"}},
                ],
            },
        )
        added = projector.project_event(event)
        assert [n["message"] for n in added] == [
            "Baguette for order ORD-7 assigned to Sami",
            "item for order ORD-7 assigned to lea",
        ]
        assert {n["data"]["taskId"] for n in added} == {"i1", "i2"}

    def test_order_completed(self, projector):
        event = parse_event("orderCompleted", {"eventId": "c1", "orderId": "o1", "orderNumber": "ORD-1"})
        projector.project_event(event)
        assert projector.notifications[0]["message"] == "Order ORD-1 is completed"


class TestProjectOutcome:
    def outcome(self, ok=True, error=None):
        return Outcome(
            action_id="r1:approve:1",
            record_id="r1",
            action_type="approve",
            status="approved" if ok else "pending",
            ok=ok,
            settled_at=NOW,
            error=error,
            record={"id": "r1", "number": "RET-9", "orderId": "o9"},
        )

    def test_success(self, projector):
        entry = projector.project_outcome(self.outcome())
        assert entry["type"] == "success"
        assert entry["message"] == "Return RET-9 approved"
        assert entry["data"] == {"returnId": "r1", "orderId": "o9"}

    def test_failure(self, projector):
        entry = projector.project_outcome(self.outcome(ok=False, error=ServerError("boom", status_code=500)))
        assert entry["type"] == "error"
        assert entry["message"] == "Could not approve return RET-9: boom"

    def test_same_outcome_once(self, projector):
        projector.project_outcome(self.outcome())
        assert projector.project_outcome(self.outcome()) is None


class TestReadState:
    def test_counts(self, projector):
        projector.add(type="info", message="a", source_id="s1", data={"returnId": "r1"})
        projector.add(type="info", message="b", source_id="s2", data={"orderId": "o1"})
        assert projector.unread_count == 2
        assert projector.unread_by_path == {"/returns": 1, "/orders": 1}

        projector.mark_read(projector.notifications[0]["id"])
        assert projector.unread_count == 1
        projector.mark_all_read()
        assert projector.unread_count == 0

    def test_clear(self, projector):
        projector.add(type="info", message="a", source_id="s1")
        projector.clear()
        assert projector.notifications == []
        assert projector.add(type="info", message="a", source_id="s1") is None

    def test_capacity(self):
        projector = NotificationProjector(capacity=3, now=lambda: NOW)
        for n in range(5):
            projector.add(type="info", message=str(n), source_id=f"s{n}")
        assert [e["message"] for e in projector.notifications] == ["4", "3", "2"]


class TestAttach:
    @pytest.mark.asyncio
    async def test_stream_events_reach_feed(self, projector, transport, identity):
        stream = EventStream(transport, identity)
        projector.attach(stream)
        await stream.connect()

        await transport.simulate("orderCreated", {"_id": "o1", "orderNumber": "ORD-1", "eventId": "x1"})
        await transport.simulate("itemStatusUpdated", {"orderId": "o1", "itemId": "i1", "status": "completed"})

        assert [n["data"].get("orderId") for n in projector.notifications] == ["o1"]
