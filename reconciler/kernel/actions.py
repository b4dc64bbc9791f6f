"""
Reconciler Kernel — Action Construction

Factory functions for creating well-formed actions.
Used by the services to wrap snapshot results, push events and action
outcomes before dispatching them, and by tests to build actions concisely.
"""

from __future__ import annotations

from typing import Any

from reconciler.kernel.types import Action

SET_LIST = "SET_LIST"
ISSUE_FETCH = "ISSUE_FETCH"
ADD_RECORD = "ADD_RECORD"
UPDATE_STATUS = "UPDATE_STATUS"
UPDATE_ITEM = "UPDATE_ITEM"
ASSIGN_ITEMS = "ASSIGN_ITEMS"
SET_FILTER_STATUS = "SET_FILTER_STATUS"
SET_FILTER_BRANCH = "SET_FILTER_BRANCH"
SET_SEARCH_QUERY = "SET_SEARCH_QUERY"
SET_SORT = "SET_SORT"
SET_PAGE = "SET_PAGE"
SET_VIEW_MODE = "SET_VIEW_MODE"
SET_SUBMITTING = "SET_SUBMITTING"
SET_CONNECTION = "SET_CONNECTION"
SET_ERROR = "SET_ERROR"


def set_list(items: list[dict[str, Any]], total: int, seq: int) -> Action:
    return Action(SET_LIST, {"items": items, "total": total, "seq": seq})


def issue_fetch(seq: int) -> Action:
    return Action(ISSUE_FETCH, {"seq": seq})


def add_record(record: dict[str, Any]) -> Action:
    return Action(ADD_RECORD, {"record": record})


def update_status(
    record_id: str,
    status: str,
    *,
    review_notes: str | None = None,
    adjusted_total: float | None = None,
    timestamp: str | None = None,
) -> Action:
    """
    Build an UPDATE_STATUS action.

    Optional fields are left out of the payload entirely when None, so the
    reducer can tell "not provided" apart from "clear this field".
    """
    payload: dict[str, Any] = {"id": record_id, "status": status}
    if review_notes is not None:
        payload["reviewNotes"] = review_notes
    if adjusted_total is not None:
        payload["adjustedTotal"] = adjusted_total
    if timestamp is not None:
        payload["timestamp"] = timestamp
    return Action(UPDATE_STATUS, payload)


def update_item(record_id: str, item_id: str, status: str) -> Action:
    return Action(UPDATE_ITEM, {"recordId": record_id, "itemId": item_id, "status": status})


def assign_items(record_id: str, items: list[dict[str, Any]]) -> Action:
    return Action(ASSIGN_ITEMS, {"recordId": record_id, "items": items})


def set_filter_status(status: str) -> Action:
    return Action(SET_FILTER_STATUS, {"value": status})


def set_filter_branch(branch_id: str) -> Action:
    return Action(SET_FILTER_BRANCH, {"value": branch_id})


def set_search_query(query: str) -> Action:
    return Action(SET_SEARCH_QUERY, {"value": query})


def set_sort(by: str | None = None, order: str | None = None) -> Action:
    return Action(SET_SORT, {"by": by, "order": order})


def set_page(page: int) -> Action:
    return Action(SET_PAGE, {"page": page})


def set_view_mode(mode: str) -> Action:
    return Action(SET_VIEW_MODE, {"mode": mode})


def set_submitting(record_id: str | None) -> Action:
    return Action(SET_SUBMITTING, {"id": record_id})


def set_connection(state: str, error: str | None = None) -> Action:
    return Action(SET_CONNECTION, {"state": state, "error": error})


def set_error(message: str | None) -> Action:
    return Action(SET_ERROR, {"message": message})
