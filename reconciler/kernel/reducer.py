"""
Reconciler Kernel — Reducer

Pure function: (state, action) → ReduceResult
No side effects. No IO. No clock reads. Deterministic.

The single source of truth for the canonical record list, the server-reported
count, and the UI-facing substate (filters, sort, page, submitting token,
connection status).

Three sources feed it:
  - snapshot responses (SET_LIST, gated by fetch sequence numbers)
  - push events (ADD_RECORD, UPDATE_STATUS, UPDATE_ITEM, ASSIGN_ITEMS)
  - local action outcomes (UPDATE_STATUS, SET_SUBMITTING)

Conflicts between sources are resolved by field-level merge: whichever
dispatch is applied last wins for the fields it carries.
"""

from __future__ import annotations

import copy
from typing import Any

from reconciler.kernel import actions as A
from reconciler.kernel.filters import matches
from reconciler.kernel.types import (
    CONNECTION_STATES,
    DEFAULT_SORT_BY,
    DEFAULT_SORT_ORDER,
    DISCONNECTED,
    ITEM_STATUSES,
    KIND_ORDER,
    RECORD_KINDS,
    SORT_FIELDS,
    SORT_ORDERS,
    VIEW_MODES,
    Action,
    ReduceResult,
    can_transition,
)

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_state(kind: str = "return") -> dict[str, Any]:
    """
    The initial state for a view over one record kind.

    State = {
        "kind":            "return" | "order",
        "records":         [Record],           # canonical list, unique by id
        "view":            {filters, sort, page, viewMode, totalCount},
        "submitting":      record id | None,
        "connection":      Disconnected | Connecting | Connected | Reconnecting,
        "connectionError": str | None,
        "error":           str | None,
        "lastSeq":         highest fetch sequence issued,
        "appliedSeq":      sequence of the last applied snapshot,
    }
    """
    if kind not in RECORD_KINDS:
        raise ValueError(f"unknown record kind: {kind}")
    return {
        "kind": kind,
        "records": [],
        "view": {
            "filterStatus": "",
            "filterBranch": "",
            "searchQuery": "",
            "sortBy": DEFAULT_SORT_BY,
            "sortOrder": DEFAULT_SORT_ORDER,
            "currentPage": 1,
            "viewMode": "card",
            "totalCount": 0,
        },
        "submitting": None,
        "connection": DISCONNECTED,
        "connectionError": None,
        "error": None,
        "lastSeq": 0,
        "appliedSeq": 0,
    }


def reduce(state: dict[str, Any], action: Action) -> ReduceResult:
    """
    Apply one action to the current state.

    Pure function. The returned state is a new dict (deep copy on mutation
    paths). The input state is never modified; a rejected action returns the
    input state untouched.
    """
    handler = _HANDLERS.get(action.type)
    if handler is None:
        return ReduceResult(state=state, accepted=False, reason=f"UNKNOWN_ACTION: {action.type}")

    payload = action.payload if isinstance(action.payload, dict) else {}
    snap = copy.deepcopy(state)
    result = handler(snap, payload)
    if not result.accepted:
        return ReduceResult(state=state, accepted=False, reason=result.reason)
    return result


def replay(actions: list[Action], kind: str = "return") -> dict[str, Any]:
    """
    Rebuild state from scratch by reducing over all actions.
    Rejected actions are skipped.
    """
    state = empty_state(kind)
    for action in actions:
        result = reduce(state, action)
        if result.accepted:
            state = result.state
    return state


def find_record(state: dict[str, Any], record_id: str) -> dict[str, Any] | None:
    for record in state["records"]:
        if record.get("id") == record_id:
            return record
    return None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _reject(snap: dict, code: str, msg: str) -> ReduceResult:
    return ReduceResult(state=snap, accepted=False, reason=f"{code}: {msg}")


def _ok(snap: dict) -> ReduceResult:
    return ReduceResult(state=snap, accepted=True)


def _dedupe(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the first occurrence of every id, preserving order."""
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for item in items:
        rid = item.get("id")
        if rid is None or rid in seen:
            continue
        seen.add(rid)
        out.append(item)
    return out


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _reset_page(snap: dict) -> None:
    snap["view"]["currentPage"] = 1


# ---------------------------------------------------------------------------
# Snapshot handlers
# ---------------------------------------------------------------------------


def _handle_issue_fetch(snap: dict, p: dict) -> ReduceResult:
    seq = p.get("seq")
    if not _is_int(seq) or seq < 1:
        return _reject(snap, "INVALID_SEQ", repr(seq))
    snap["lastSeq"] = max(snap["lastSeq"], seq)
    return _ok(snap)


def _handle_set_list(snap: dict, p: dict) -> ReduceResult:
    seq = p.get("seq")
    items = p.get("items")
    total = p.get("total")

    if not _is_int(seq):
        return _reject(snap, "INVALID_SEQ", repr(seq))
    if seq != snap["lastSeq"]:
        return _reject(snap, "STALE_RESPONSE", f"seq {seq} superseded by {snap['lastSeq']}")
    if not isinstance(items, list):
        return _reject(snap, "INVALID_PAYLOAD", "items must be a list")
    if not _is_int(total) or total < 0:
        return _reject(snap, "INVALID_PAYLOAD", "total must be a non-negative int")

    snap["records"] = _dedupe([copy.deepcopy(i) for i in items if isinstance(i, dict)])
    snap["view"]["totalCount"] = total
    snap["appliedSeq"] = seq
    snap["error"] = None
    return _ok(snap)


# ---------------------------------------------------------------------------
# Record handlers
# ---------------------------------------------------------------------------


def _handle_add_record(snap: dict, p: dict) -> ReduceResult:
    record = p.get("record")
    if not isinstance(record, dict) or not record.get("id"):
        return _reject(snap, "INVALID_RECORD", "record with an id is required")

    kind = record.get("kind")
    if kind is not None and kind != snap["kind"]:
        return _reject(snap, "KIND_MISMATCH", f"{kind} record in {snap['kind']} view")

    if find_record(snap, record["id"]) is not None:
        return _reject(snap, "DUPLICATE", record["id"])

    # The dispatch site is expected to have checked this already; admitting a
    # record outside the active query would desync totalCount from the server.
    if not matches(record, snap["view"]):
        return _reject(snap, "FILTERED_OUT", record["id"])

    snap["records"].insert(0, record)
    snap["view"]["totalCount"] += 1
    return _ok(snap)


def _handle_update_status(snap: dict, p: dict) -> ReduceResult:
    record_id = p.get("id")
    target = p.get("status")
    if not record_id or not isinstance(target, str):
        return _reject(snap, "INVALID_PAYLOAD", "id and status are required")

    record = find_record(snap, record_id)
    if record is None:
        # Outside the current page/filter; the next fetch picks it up.
        return _reject(snap, "NOT_FOUND", record_id)

    current = record.get("status")
    if target != current and not can_transition(snap["kind"], current, target):
        return _reject(snap, "INVALID_TRANSITION", f"{record_id}: {current} → {target}")

    if target != current:
        record["status"] = target
        if p.get("timestamp"):
            record.setdefault("statusHistory", []).append({"status": target, "at": p["timestamp"]})

    if "reviewNotes" in p:
        record["reviewNotes"] = p["reviewNotes"]
    if "adjustedTotal" in p:
        record.setdefault("totals", {})["adjustedTotal"] = p["adjustedTotal"]

    return _ok(snap)


def _maybe_complete_order(snap: dict, record: dict) -> None:
    """Orders move to completed once every item is completed."""
    if snap["kind"] != KIND_ORDER or record.get("status") != "in_production":
        return
    items = record.get("items") or []
    if items and all(i.get("status") == "completed" for i in items):
        record["status"] = "completed"


def _handle_update_item(snap: dict, p: dict) -> ReduceResult:
    record_id = p.get("recordId")
    item_id = p.get("itemId")
    status = p.get("status")
    if not record_id or not item_id:
        return _reject(snap, "INVALID_PAYLOAD", "recordId and itemId are required")
    if status not in ITEM_STATUSES:
        return _reject(snap, "UNKNOWN_ITEM_STATUS", repr(status))

    record = find_record(snap, record_id)
    if record is None:
        return _reject(snap, "NOT_FOUND", record_id)

    item = next((i for i in record.get("items") or [] if i.get("itemId") == item_id), None)
    if item is None:
        return _reject(snap, "NOT_FOUND", f"{record_id}/{item_id}")

    item["status"] = status
    _maybe_complete_order(snap, record)
    return _ok(snap)


def _handle_assign_items(snap: dict, p: dict) -> ReduceResult:
    record_id = p.get("recordId")
    assignments = p.get("items")
    if not record_id or not isinstance(assignments, list) or not all(isinstance(a, dict) for a in assignments):
        return _reject(snap, "INVALID_PAYLOAD", "recordId and items are required")

    record = find_record(snap, record_id)
    if record is None:
        return _reject(snap, "NOT_FOUND", record_id)

    for assignment in assignments:
        status = assignment.get("status") or "assigned"
        if status not in ITEM_STATUSES:
            return _reject(snap, "UNKNOWN_ITEM_STATUS", repr(status))

    by_id = {i.get("itemId"): i for i in record.get("items") or []}
    touched = 0
    for assignment in assignments:
        item = by_id.get(assignment.get("itemId"))
        if item is None:
            continue
        if assignment.get("assignedTo") is not None:
            item["assignedTo"] = assignment["assignedTo"]
        item["status"] = assignment.get("status") or "assigned"
        touched += 1

    if touched == 0:
        return _reject(snap, "NOT_FOUND", f"{record_id}: no matching items")

    items = record.get("items") or []
    if (
        snap["kind"] == KIND_ORDER
        and record.get("status") == "approved"
        and all(i.get("assignedTo") for i in items)
    ):
        record["status"] = "in_production"
    return _ok(snap)


# ---------------------------------------------------------------------------
# View handlers
# ---------------------------------------------------------------------------


def _view_setter(field: str):
    def handler(snap: dict, p: dict) -> ReduceResult:
        value = p.get("value")
        if value is None:
            value = ""
        if not isinstance(value, str):
            return _reject(snap, "INVALID_PAYLOAD", f"{field} must be a string")
        snap["view"][field] = value
        _reset_page(snap)
        return _ok(snap)

    return handler


def _handle_set_sort(snap: dict, p: dict) -> ReduceResult:
    by = p.get("by") or DEFAULT_SORT_BY
    order = p.get("order") or DEFAULT_SORT_ORDER
    if by not in SORT_FIELDS:
        return _reject(snap, "INVALID_SORT", by)
    if order not in SORT_ORDERS:
        return _reject(snap, "INVALID_SORT", order)
    snap["view"]["sortBy"] = by
    snap["view"]["sortOrder"] = order
    _reset_page(snap)
    return _ok(snap)


def _handle_set_page(snap: dict, p: dict) -> ReduceResult:
    page = p.get("page")
    if not _is_int(page) or page < 1:
        return _reject(snap, "INVALID_PAGE", repr(page))
    snap["view"]["currentPage"] = page
    return _ok(snap)


def _handle_set_view_mode(snap: dict, p: dict) -> ReduceResult:
    mode = p.get("mode")
    if mode not in VIEW_MODES:
        return _reject(snap, "INVALID_VIEW_MODE", repr(mode))
    snap["view"]["viewMode"] = mode
    _reset_page(snap)
    return _ok(snap)


# ---------------------------------------------------------------------------
# Session handlers
# ---------------------------------------------------------------------------


def _handle_set_submitting(snap: dict, p: dict) -> ReduceResult:
    snap["submitting"] = p.get("id")
    return _ok(snap)


def _handle_set_connection(snap: dict, p: dict) -> ReduceResult:
    state = p.get("state")
    if state not in CONNECTION_STATES:
        return _reject(snap, "INVALID_CONNECTION_STATE", repr(state))
    snap["connection"] = state
    snap["connectionError"] = p.get("error")
    return _ok(snap)


def _handle_set_error(snap: dict, p: dict) -> ReduceResult:
    snap["error"] = p.get("message")
    return _ok(snap)


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

_HANDLERS: dict[str, Any] = {
    A.ISSUE_FETCH: _handle_issue_fetch,
    A.SET_LIST: _handle_set_list,
    A.ADD_RECORD: _handle_add_record,
    A.UPDATE_STATUS: _handle_update_status,
    A.UPDATE_ITEM: _handle_update_item,
    A.ASSIGN_ITEMS: _handle_assign_items,
    A.SET_FILTER_STATUS: _view_setter("filterStatus"),
    A.SET_FILTER_BRANCH: _view_setter("filterBranch"),
    A.SET_SEARCH_QUERY: _view_setter("searchQuery"),
    A.SET_SORT: _handle_set_sort,
    A.SET_PAGE: _handle_set_page,
    A.SET_VIEW_MODE: _handle_set_view_mode,
    A.SET_SUBMITTING: _handle_set_submitting,
    A.SET_CONNECTION: _handle_set_connection,
    A.SET_ERROR: _handle_set_error,
}
