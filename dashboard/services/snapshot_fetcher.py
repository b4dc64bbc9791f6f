"""
SnapshotFetcher — paginated REST snapshots for the current view.

Each request takes a strictly increasing sequence number at issue time
(ISSUE_FETCH). The result is dispatched as SET_LIST tagged with that number;
the reducer applies it only if no newer request has been issued since. There
is no native cancellation of in-flight requests, only suppression on arrival.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from dashboard.config import settings
from dashboard.errors import DashboardError
from dashboard.services.api_client import ApiClient
from dashboard.services.store import Store
from reconciler.kernel import actions
from reconciler.kernel.filters import query_params

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """One fetch outcome, as handed to the reducer."""

    seq: int
    params: dict[str, Any]
    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    applied: bool = False


class SnapshotFetcher:
    """Issues snapshot queries and feeds tagged results into the store."""

    def __init__(self, store: Store, api: ApiClient, *, search_debounce: float | None = None):
        self._store = store
        self._api = api
        self._search_debounce = (
            search_debounce if search_debounce is not None else settings.SEARCH_DEBOUNCE_SECONDS
        )
        self._search_task: asyncio.Task | None = None

    def _issue(self) -> int:
        seq = self._store.state["lastSeq"] + 1
        self._store.dispatch(actions.issue_fetch(seq))
        return seq

    def _is_current(self, seq: int) -> bool:
        return seq == self._store.state["lastSeq"]

    async def fetch(self, params: dict[str, Any]) -> Snapshot:
        """
        Fetch one page for explicit query parameters.

        Raises the typed DashboardError for a failure of the current request
        (existing records are kept). A failure of a superseded request is
        logged and swallowed.
        """
        seq = self._issue()
        snapshot = Snapshot(seq=seq, params=params)
        try:
            items, total = await self._api.list_records(self._store.kind, params)
        except DashboardError as e:
            if not self._is_current(seq):
                logger.debug("snapshot_fetcher: stale failure seq=%d ignored: %s", seq, e)
                return snapshot
            logger.warning("snapshot_fetcher: fetch seq=%d failed: %s", seq, e)
            self._store.dispatch(actions.set_error(e.message))
            raise

        snapshot.items = items
        snapshot.total = total
        snapshot.applied = self._store.dispatch(actions.set_list(items, total, seq)).accepted
        if snapshot.applied:
            logger.info("snapshot_fetcher: applied seq=%d (%d items, total=%d)", seq, len(items), total)
        return snapshot

    async def refresh(self) -> Snapshot:
        """Fetch for the store's current filter/sort/page/viewMode."""
        state = self._store.state
        return await self.fetch(query_params(state["view"], state["kind"]))

    def search(self, query: str) -> asyncio.Task:
        """
        Coalesce search input through a quiet-period timer.

        Each call cancels the pending timer; only the last query inside the
        quiet period is dispatched and fetched.
        """
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
        self._search_task = asyncio.create_task(self._debounced_search(query.strip()))
        return self._search_task

    async def _debounced_search(self, query: str) -> Snapshot | None:
        await asyncio.sleep(self._search_debounce)
        self._store.dispatch(actions.set_search_query(query))
        try:
            return await self.refresh()
        except DashboardError:
            # surfaced via SET_ERROR
            return None

    def cancel_pending(self) -> None:
        if self._search_task is not None and not self._search_task.done():
            self._search_task.cancel()
