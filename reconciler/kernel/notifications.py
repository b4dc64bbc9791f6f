"""
Reconciler Kernel — Notification projection state

Pure state operations over the notification feed. Independent of the record
reconciliation state: nothing here reads or writes canonical records.

Feed = {
    "items":    [Notification],   # newest first, at most `capacity`
    "seenKeys": [str],            # dedup keys, oldest first, bounded
}

A notification is keyed by `dedupKey` = source id + coarse timestamp bucket,
so one underlying occurrence (a push event redelivered, or an action outcome
echoed back by the channel) never yields two entries.
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from typing import Any

from reconciler.kernel.types import NOTIFICATION_TYPES

DEFAULT_CAPACITY = 100
DEFAULT_BUCKET_SECONDS = 60

# Dedup keys outlive the entries they produced, so an evicted entry can't be
# resurrected by a late redelivery.
_KEY_RETENTION_FACTOR = 5

_TASK_TYPES = {"taskAssigned", "taskStarted", "taskCompleted"}


def empty_feed() -> dict[str, Any]:
    return {"items": [], "seenKeys": []}


def time_bucket(timestamp: str, bucket_seconds: int = DEFAULT_BUCKET_SECONDS) -> int:
    """
    Coarse bucket index for an ISO 8601 timestamp.
    Timestamps without an offset are read as UTC. Unparseable timestamps fall
    into bucket 0.
    """
    try:
        dt = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp()) // max(bucket_seconds, 1)


def dedup_key(source_id: str, timestamp: str, bucket_seconds: int = DEFAULT_BUCKET_SECONDS) -> str:
    return f"{source_id}:{time_bucket(timestamp, bucket_seconds)}"


def make_notification(
    *,
    notification_id: str,
    type: str,
    message: str,
    created_at: str,
    source_id: str,
    data: dict[str, Any] | None = None,
    bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
) -> dict[str, Any]:
    """Build a well-formed, unread notification entry."""
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"unknown notification type: {type}")
    return {
        "id": notification_id,
        "type": type,
        "message": message[:100],
        "data": dict(data or {}),
        "read": False,
        "createdAt": created_at,
        "dedupKey": dedup_key(source_id, created_at, bucket_seconds),
    }


def add(
    feed: dict[str, Any], notification: dict[str, Any], capacity: int = DEFAULT_CAPACITY
) -> tuple[dict[str, Any], bool]:
    """
    Prepend a notification unless its dedup key was already seen.

    Returns (new_feed, added). Evicts oldest entries beyond `capacity`.
    """
    key = notification.get("dedupKey") or notification["id"]
    if key in feed["seenKeys"]:
        return feed, False

    new = copy.deepcopy(feed)
    new["items"].insert(0, copy.deepcopy(notification))
    del new["items"][capacity:]
    new["seenKeys"].append(key)
    overflow = len(new["seenKeys"]) - capacity * _KEY_RETENTION_FACTOR
    if overflow > 0:
        del new["seenKeys"][:overflow]
    return new, True


def mark_read(feed: dict[str, Any], notification_id: str) -> dict[str, Any]:
    new = copy.deepcopy(feed)
    for n in new["items"]:
        if n["id"] == notification_id:
            n["read"] = True
    return new


def mark_all_read(feed: dict[str, Any]) -> dict[str, Any]:
    new = copy.deepcopy(feed)
    for n in new["items"]:
        n["read"] = True
    return new


def clear(feed: dict[str, Any]) -> dict[str, Any]:
    """Drop every entry. Dedup keys are kept so redeliveries stay suppressed."""
    return {"items": [], "seenKeys": list(feed["seenKeys"])}


def unread_count(feed: dict[str, Any]) -> int:
    return sum(1 for n in feed["items"] if not n["read"])


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


def category_for(notification: dict[str, Any]) -> str | None:
    data = notification.get("data") or {}
    if data.get("taskId") or data.get("kind") in _TASK_TYPES:
        return "production-tasks"
    if data.get("returnId"):
        return "returns"
    if data.get("orderId"):
        return "orders"
    return None


def path_for(category: str, role: str) -> str | None:
    if category == "orders":
        return "/branch-orders" if role == "branch" else "/orders"
    if category == "production-tasks":
        return "/chef-tasks" if role == "chef" else "/production-tasks"
    if category == "returns":
        return "/branch-returns" if role == "branch" else "/returns"
    return None


def unread_by_path(feed: dict[str, Any], role: str) -> dict[str, int]:
    """Unread counts grouped by the dashboard route each entry belongs to."""
    counts: dict[str, int] = {}
    for n in feed["items"]:
        if n["read"]:
            continue
        category = category_for(n)
        path = path_for(category, role) if category else None
        if path:
            counts[path] = counts.get(path, 0) + 1
    return counts
