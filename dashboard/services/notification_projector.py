"""
NotificationProjector — user-facing notification feed.

Derives entries from a subset of inbound events and from action outcomes.
Raw item-progress updates (itemStatusUpdated) drive record state but never
reach the feed. Entries are deduplicated by source id + timestamp bucket and
capped, oldest evicted first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from dashboard.config import settings
from dashboard.models.events import (
    OrderCompleted,
    OrderCreated,
    OrderStatusUpdated,
    ReturnCreated,
    ReturnStatusUpdated,
    TaskAssigned,
    TaskCompleted,
)
from reconciler.kernel import notifications as feed_ops
from reconciler.kernel.types import now_iso

if TYPE_CHECKING:
    from dashboard.services.action_coordinator import Outcome
    from dashboard.services.event_stream import EventStream

logger = logging.getLogger(__name__)

PROJECTED_KINDS = (
    "returnCreated",
    "orderCreated",
    "returnStatusUpdated",
    "orderStatusUpdated",
    "orderCompleted",
    "taskAssigned",
    "taskCompleted",
)


class NotificationProjector:
    """Owns the notification feed for one session."""

    def __init__(
        self,
        *,
        role: str = "admin",
        capacity: int | None = None,
        bucket_seconds: int | None = None,
        on_new: Callable[[dict[str, Any]], None] | None = None,
        now: Callable[[], str] = now_iso,
    ):
        self.role = role
        self.capacity = capacity or settings.NOTIFICATION_CAPACITY
        self.bucket_seconds = bucket_seconds or settings.NOTIFICATION_BUCKET_SECONDS
        self._on_new = on_new
        self._now = now
        self._feed = feed_ops.empty_feed()

    # -- read side --

    @property
    def notifications(self) -> list[dict[str, Any]]:
        return self._feed["items"]

    @property
    def unread_count(self) -> int:
        return feed_ops.unread_count(self._feed)

    @property
    def unread_by_path(self) -> dict[str, int]:
        return feed_ops.unread_by_path(self._feed, self.role)

    # -- mutations --

    def add(
        self,
        *,
        type: str,
        message: str,
        source_id: str,
        created_at: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Add one entry. Returns it, or None if it was a duplicate."""
        created_at = created_at or self._now()
        notification = feed_ops.make_notification(
            notification_id=f"n-{feed_ops.dedup_key(source_id, created_at, self.bucket_seconds)}",
            type=type,
            message=message,
            created_at=created_at,
            source_id=source_id,
            data=data,
            bucket_seconds=self.bucket_seconds,
        )
        self._feed, added = feed_ops.add(self._feed, notification, self.capacity)
        if not added:
            logger.debug("notification_projector: duplicate %s", notification["dedupKey"])
            return None
        if self._on_new is not None:
            self._on_new(notification)
        return notification

    def mark_read(self, notification_id: str) -> None:
        self._feed = feed_ops.mark_read(self._feed, notification_id)

    def mark_all_read(self) -> None:
        self._feed = feed_ops.mark_all_read(self._feed)

    def clear(self) -> None:
        self._feed = feed_ops.clear(self._feed)

    # -- projection --

    def attach(self, stream: EventStream) -> None:
        for kind in PROJECTED_KINDS:
            stream.subscribe(kind, self.project_event)

    def project_event(self, event: Any) -> list[dict[str, Any]]:
        """Project one validated inbound event. Returns the entries added."""
        ts = event.timestamp or getattr(event, "createdAt", None) or self._now()
        eid = event.event_id
        added: list[dict[str, Any] | None] = []

        if isinstance(event, ReturnCreated):
            branch = event.branch.name if event.branch else ""
            added.append(
                self.add(
                    type="success",
                    message=f"New return {event.returnNumber or event.id} from {branch or 'unknown branch'}",
                    source_id=eid,
                    created_at=ts,
                    data={"returnId": event.id, "orderId": event.order.id if event.order else None, "eventId": eid},
                )
            )
        elif isinstance(event, OrderCreated):
            branch = event.branch.name if event.branch else ""
            added.append(
                self.add(
                    type="success",
                    message=f"New order {event.orderNumber or event.id} from {branch or 'unknown branch'}",
                    source_id=eid,
                    created_at=ts,
                    data={"orderId": event.id, "eventId": eid},
                )
            )
        elif isinstance(event, ReturnStatusUpdated):
            added.append(
                self.add(
                    type="info",
                    message=f"Return {event.returnNumber or event.returnId} is now {event.status}",
                    source_id=eid,
                    created_at=ts,
                    data={"returnId": event.returnId, "eventId": eid},
                )
            )
        elif isinstance(event, OrderStatusUpdated):
            added.append(
                self.add(
                    type="info",
                    message=f"Order {event.orderNumber or event.orderId} is now {event.status}",
                    source_id=eid,
                    created_at=ts,
                    data={"orderId": event.orderId, "eventId": eid},
                )
            )
        elif isinstance(event, OrderCompleted):
            added.append(
                self.add(
                    type="success",
                    message=f"Order {event.orderNumber or event.orderId} is completed",
                    source_id=eid,
                    created_at=ts,
                    data={"orderId": event.orderId, "eventId": eid},
                )
            )
        elif isinstance(event, TaskAssigned):
            for item in event.items:
                chef = (item.assignedTo or {}).get("name") or (item.assignedTo or {}).get("username") or "a chef"
                product = (item.product or {}).get("name") or "item"
                added.append(
                    self.add(
                        type="info",
                        message=f"{product} for order {event.orderNumber or event.orderId} assigned to {chef}",
                        source_id=f"{eid}-{item.id}",
                        created_at=ts,
                        data={"orderId": event.orderId, "taskId": item.id, "itemId": item.id, "kind": "taskAssigned"},
                    )
                )
        elif isinstance(event, TaskCompleted):
            task_id = event.taskId or event.itemId
            added.append(
                self.add(
                    type="success",
                    message=f"{event.productName or 'Task'} for order {event.orderNumber or event.orderId} is done",
                    source_id=eid,
                    created_at=ts,
                    data={"orderId": event.orderId, "taskId": task_id, "kind": "taskCompleted"},
                )
            )
        else:
            logger.debug("notification_projector: %s not projected", getattr(event, "kind", event))

        return [n for n in added if n is not None]

    def project_outcome(self, outcome: Outcome) -> dict[str, Any] | None:
        """Audit entry for a settled approve/reject."""
        number = outcome.record.get("number") or outcome.record_id
        data = {"returnId": outcome.record_id, "orderId": outcome.record.get("orderId")}
        if outcome.ok:
            return self.add(
                type="success",
                message=f"Return {number} {outcome.status}",
                source_id=outcome.action_id,
                created_at=outcome.settled_at,
                data=data,
            )
        reason = outcome.error.message if outcome.error is not None else "unknown error"
        return self.add(
            type="error",
            message=f"Could not {outcome.action_type} return {number}: {reason}",
            source_id=outcome.action_id,
            created_at=outcome.settled_at,
            data=data,
        )
