"""
Reconciler Kernel — Filter Index

Pure derivation of "what the view currently shows" from canonical state.

Used only as a transient render aid (e.g. right after a push-event merge,
before the next authoritative fetch resolves). Nothing here is authoritative
for totalCount or cross-page consistency; those belong to snapshot
responses.
"""

from __future__ import annotations

import math
from typing import Any

from reconciler.kernel.types import page_size

PRIORITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "urgent": 3}


# ---------------------------------------------------------------------------
# Predicate
# ---------------------------------------------------------------------------


def matches(record: dict[str, Any], view: dict[str, Any]) -> bool:
    """
    Evaluate a record against the active filter/search predicate.

    - filterStatus: exact status match (empty = any)
    - filterBranch: branch id match (empty = any)
    - searchQuery: case-insensitive substring of the record number or the
      parent order number (empty = any)
    """
    status = view.get("filterStatus") or ""
    if status and record.get("status") != status:
        return False

    branch = view.get("filterBranch") or ""
    if branch and (record.get("branch") or {}).get("id") != branch:
        return False

    query = (view.get("searchQuery") or "").strip().lower()
    if query:
        haystacks = (record.get("number") or "", record.get("orderNumber") or "")
        if not any(query in h.lower() for h in haystacks):
            return False

    return True


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _sort_key(sort_by: str):
    if sort_by == "totalAmount":
        return lambda r: (r.get("totals") or {}).get("amount") or 0
    if sort_by == "priority":
        return lambda r: PRIORITY_RANK.get(r.get("priority") or "medium", 1)
    # "date" and anything unknown
    return lambda r: r.get("createdAt") or ""


def apply_sort(records: list[dict[str, Any]], sort_by: str, sort_order: str) -> list[dict[str, Any]]:
    """Stable sort; returns a new list."""
    return sorted(records, key=_sort_key(sort_by), reverse=(sort_order == "desc"))


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


def total_pages(total: int, kind: str, view_mode: str) -> int:
    return math.ceil(total / page_size(kind, view_mode)) if total > 0 else 0


def visible_slice(records: list[dict[str, Any]], view: dict[str, Any], kind: str) -> list[dict[str, Any]]:
    """
    (canonicalList, viewState) → visibleSlice

    The buffer already is the server's page for `currentPage`, so this only
    filters, sorts and caps it at the page size (push-admitted creations can
    push it past one page until the next fetch lands).
    """
    filtered = [r for r in records if matches(r, view)]
    ordered = apply_sort(filtered, view.get("sortBy") or "date", view.get("sortOrder") or "desc")
    return ordered[: page_size(kind, view.get("viewMode") or "card")]


def visible(state: dict[str, Any]) -> list[dict[str, Any]]:
    """Convenience wrapper over a full engine state."""
    return visible_slice(state["records"], state["view"], state["kind"])


def query_params(view: dict[str, Any], kind: str) -> dict[str, Any]:
    """
    Snapshot query parameters for the current view.

    Empty filter values are omitted; page and limit are always present.
    """
    params: dict[str, Any] = {
        "sortBy": view.get("sortBy") or "date",
        "sortOrder": view.get("sortOrder") or "desc",
        "page": view.get("currentPage") or 1,
        "limit": page_size(kind, view.get("viewMode") or "card"),
    }
    if view.get("filterStatus"):
        params["status"] = view["filterStatus"]
    if view.get("filterBranch"):
        params["branch"] = view["filterBranch"]
    if view.get("searchQuery"):
        params["search"] = view["searchQuery"]
    return params
