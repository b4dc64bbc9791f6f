"""
ReconciliationSession — one dashboard view over one record kind.

Wires the store, snapshot fetcher, event stream, action coordinator and
notification projector together, and translates validated push events into
reducer actions:

    returnCreated / orderCreated   → filter admission → ADD_RECORD
    returnStatusUpdated            → UPDATE_STATUS
    orderStatusUpdated             → UPDATE_STATUS
    orderCompleted                 → UPDATE_STATUS completed
    itemStatusUpdated              → UPDATE_ITEM
    taskAssigned                   → ASSIGN_ITEMS
    taskCompleted                  → UPDATE_ITEM completed

UI intents (filter, search, sort, page, view mode) dispatch first and then
refetch, so the reducer's sequence gate decides which response lands.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from dashboard.config import Settings, settings as default_settings
from dashboard.errors import DashboardError
from dashboard.models.events import (
    ItemStatusUpdated,
    OrderCompleted,
    OrderCreated,
    OrderStatusUpdated,
    ReturnCreated,
    ReturnStatusUpdated,
    TaskAssigned,
    TaskCompleted,
)
from dashboard.models.records import BranchSummary
from dashboard.services.action_coordinator import ActionCoordinator, Outcome
from dashboard.services.api_client import ApiClient
from dashboard.services.cache import TTLCache
from dashboard.services.event_stream import EventStream, RoomIdentity, Transport
from dashboard.services.notification_projector import NotificationProjector
from dashboard.services.snapshot_fetcher import Snapshot, SnapshotFetcher
from dashboard.services.store import Store
from reconciler.kernel import actions
from reconciler.kernel.filters import matches, total_pages, visible
from reconciler.kernel.types import KIND_RETURN, now_iso

logger = logging.getLogger(__name__)

_BRANCHES_KEY = "branches"


class ReconciliationSession:
    """Owns every component of one view and routes between them."""

    def __init__(
        self,
        kind: str,
        identity: RoomIdentity,
        api: ApiClient,
        transport: Transport,
        config: Settings | None = None,
        *,
        on_notification: Callable[[dict[str, Any]], None] | None = None,
        clock: Callable[[], float] | None = None,
        now: Callable[[], str] = now_iso,
    ):
        config = config or default_settings
        self.kind = kind
        self.identity = identity
        self.api = api
        self.store = Store(kind)
        self.fetcher = SnapshotFetcher(self.store, api, search_debounce=config.SEARCH_DEBOUNCE_SECONDS)
        self.stream = EventStream(transport, identity, self.store, dedup_window=config.DEDUP_WINDOW_SIZE)
        self.notifications = NotificationProjector(
            role=identity.role,
            capacity=config.NOTIFICATION_CAPACITY,
            bucket_seconds=config.NOTIFICATION_BUCKET_SECONDS,
            on_new=on_notification,
            now=now,
        )
        extra: dict[str, Any] = {} if clock is None else {"clock": clock}
        self.coordinator = ActionCoordinator(
            self.store,
            api,
            self.stream,
            self.notifications,
            quiet_period=config.SUBMIT_QUIET_PERIOD_SECONDS,
            now=now,
            **extra,
        )
        self._branches = TTLCache(config.BRANCH_CACHE_TTL_SECONDS, **extra)

        self.notifications.attach(self.stream)
        self._route()
        self.stream.on_connected(self._resync)

    # -- routing --

    def _route(self) -> None:
        if self.kind == KIND_RETURN:
            self.stream.subscribe("returnCreated", self._on_created)
            self.stream.subscribe("returnStatusUpdated", self._on_status)
        else:
            self.stream.subscribe("orderCreated", self._on_created)
            self.stream.subscribe("orderStatusUpdated", self._on_status)
            self.stream.subscribe("orderCompleted", self._on_order_completed)
            self.stream.subscribe("itemStatusUpdated", self._on_item_status)
            self.stream.subscribe("taskAssigned", self._on_task_assigned)
            self.stream.subscribe("taskCompleted", self._on_task_completed)

    def _on_created(self, event: ReturnCreated | OrderCreated) -> None:
        record = event.to_record()
        # Records outside the active query belong to another page or filter.
        if not matches(record, self.store.state["view"]):
            logger.debug("session: %s %s outside the current view", event.kind, record["id"])
            return
        self.store.dispatch(actions.add_record(record))

    def _on_status(self, event: ReturnStatusUpdated | OrderStatusUpdated) -> None:
        self.store.dispatch(
            actions.update_status(
                event.target_record_id,
                event.status,
                review_notes=getattr(event, "reviewNotes", None),
                adjusted_total=getattr(event, "adjustedTotal", None),
                timestamp=event.timestamp,
            )
        )

    def _on_order_completed(self, event: OrderCompleted) -> None:
        self.store.dispatch(actions.update_status(event.orderId, "completed", timestamp=event.timestamp))

    def _on_item_status(self, event: ItemStatusUpdated) -> None:
        self.store.dispatch(actions.update_item(event.orderId, event.itemId, event.status))

    def _on_task_assigned(self, event: TaskAssigned) -> None:
        self.store.dispatch(
            actions.assign_items(
                event.orderId,
                [
                    {"itemId": item.id, "assignedTo": item.assignedTo, "status": item.status or "assigned"}
                    for item in event.items
                ],
            )
        )

    def _on_task_completed(self, event: TaskCompleted) -> None:
        item_id = event.itemId or event.taskId
        if item_id:
            self.store.dispatch(actions.update_item(event.orderId, item_id, "completed"))

    async def _resync(self) -> None:
        try:
            await self.fetcher.refresh()
        except DashboardError as e:
            logger.warning("session: resync after connect failed: %s", e)

    # -- lifecycle --

    async def start(self) -> None:
        """Open the channel; the connected hook performs the first fetch."""
        await self.stream.connect()

    async def stop(self) -> None:
        self.fetcher.cancel_pending()
        await self.stream.disconnect()

    async def refresh(self) -> Snapshot:
        return await self.fetcher.refresh()

    # -- intents --

    async def set_filter_status(self, status: str) -> Snapshot:
        self.store.dispatch(actions.set_filter_status(status))
        return await self.fetcher.refresh()

    async def set_filter_branch(self, branch_id: str) -> Snapshot:
        self.store.dispatch(actions.set_filter_branch(branch_id))
        return await self.fetcher.refresh()

    def search(self, query: str):
        """Debounced; returns the pending task."""
        return self.fetcher.search(query)

    async def set_sort(self, by: str | None = None, order: str | None = None) -> Snapshot | None:
        if not self.store.dispatch(actions.set_sort(by, order)).accepted:
            return None
        return await self.fetcher.refresh()

    async def set_page(self, page: int) -> Snapshot | None:
        if not self.store.dispatch(actions.set_page(page)).accepted:
            return None
        return await self.fetcher.refresh()

    async def set_view_mode(self, mode: str) -> Snapshot | None:
        if not self.store.dispatch(actions.set_view_mode(mode)).accepted:
            return None
        return await self.fetcher.refresh()

    async def toggle_view_mode(self) -> Snapshot | None:
        current = self.store.state["view"]["viewMode"]
        return await self.set_view_mode("table" if current == "card" else "card")

    async def submit(self, record_id: str, action_type: str, notes: str = "") -> Outcome:
        return await self.coordinator.submit(record_id, action_type, notes)

    async def update_item(self, order_id: str, item_id: str, status: str) -> Outcome:
        return await self.coordinator.update_item(order_id, item_id, status)

    # -- read side --

    @property
    def state(self) -> dict[str, Any]:
        return self.store.state

    def visible(self) -> list[dict[str, Any]]:
        return visible(self.store.state)

    @property
    def page_count(self) -> int:
        """Pages available for the current query, from the server-reported total."""
        view = self.store.state["view"]
        return total_pages(view["totalCount"], self.kind, view["viewMode"])

    async def branches(self) -> list[BranchSummary]:
        cached = self._branches.get(_BRANCHES_KEY)
        if cached is not None:
            return cached
        branches = await self.api.list_branches()
        self._branches.set(_BRANCHES_KEY, branches)
        return branches

    def invalidate_branches(self) -> None:
        self._branches.invalidate(_BRANCHES_KEY)


