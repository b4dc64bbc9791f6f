"""
Reconciler Kernel — Shared Types

Data classes and constants used across the reducer, filter index and
notification projection. These are the contracts that bind the kernel
together.

Canonical state is a plain dict (see reducer.empty_state). Records inside it
are plain dicts too, so that any client can serialize, diff and replay them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Record kinds
# ---------------------------------------------------------------------------

KIND_RETURN = "return"
KIND_ORDER = "order"

RECORD_KINDS: set[str] = {KIND_RETURN, KIND_ORDER}


# ---------------------------------------------------------------------------
# Status graphs
# ---------------------------------------------------------------------------

# Returns: pending → approved/rejected (admin action only); approved →
# processed once the inventory adjustment lands downstream.
RETURN_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "rejected"},
    "approved": {"processed"},
    "rejected": set(),
    "processed": set(),
}

ORDER_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"approved", "cancelled"},
    "approved": {"in_production", "cancelled"},
    "in_production": {"completed", "cancelled"},
    "completed": {"in_transit"},
    "in_transit": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
}

TRANSITIONS: dict[str, dict[str, set[str]]] = {
    KIND_RETURN: RETURN_TRANSITIONS,
    KIND_ORDER: ORDER_TRANSITIONS,
}

ITEM_STATUSES: set[str] = {"pending", "assigned", "in_progress", "completed", "approved", "rejected"}


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------

VIEW_MODES: set[str] = {"card", "table"}

PAGE_SIZES: dict[str, dict[str, int]] = {
    KIND_RETURN: {"card": 10, "table": 50},
    KIND_ORDER: {"card": 12, "table": 50},
}

SORT_FIELDS: set[str] = {"date", "totalAmount", "priority"}
SORT_ORDERS: set[str] = {"asc", "desc"}

DEFAULT_SORT_BY = "date"
DEFAULT_SORT_ORDER = "desc"


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

DISCONNECTED = "Disconnected"
CONNECTING = "Connecting"
CONNECTED = "Connected"
RECONNECTING = "Reconnecting"

CONNECTION_STATES: set[str] = {DISCONNECTED, CONNECTING, CONNECTED, RECONNECTING}


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

NOTIFICATION_TYPES: set[str] = {"success", "error", "info", "warning"}


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Action:
    """
    A request to change canonical state.
    The reducer reads only `type` and `payload`.
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)


class ReduceResult:
    """
    Result of applying one action to a state.
    Never throws — always returns one of these.
    """

    __slots__ = ("state", "accepted", "reason")

    def __init__(self, state: dict[str, Any], accepted: bool, reason: str | None = None) -> None:
        self.state = state
        self.accepted = accepted
        self.reason = reason

    @property
    def code(self) -> str | None:
        """Rejection code (the part of `reason` before the colon)."""
        if self.reason is None:
            return None
        return self.reason.split(":", 1)[0]

    def __repr__(self) -> str:  # pragma: no cover
        if self.accepted:
            return "ReduceResult(accepted=True)"
        return f"ReduceResult(accepted=False, reason={self.reason!r})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def can_transition(kind: str, current: str, target: str) -> bool:
    """Return True if `current → target` is an edge of the kind's status graph."""
    graph = TRANSITIONS.get(kind, {})
    return target in graph.get(current, set())


def is_terminal(kind: str, status: str) -> bool:
    graph = TRANSITIONS.get(kind, {})
    return status in graph and not graph[status]


def page_size(kind: str, view_mode: str) -> int:
    """Pagination window for a record kind and view mode."""
    sizes = PAGE_SIZES.get(kind, PAGE_SIZES[KIND_RETURN])
    return sizes.get(view_mode, sizes["card"])


def now_iso() -> str:
    """Current UTC time as ISO 8601 string. Never called by the reducer."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
