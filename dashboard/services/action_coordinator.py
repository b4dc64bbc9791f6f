"""
ActionCoordinator — approve/reject submissions for returns, and item
progress reports for orders.

Wait-then-commit: nothing changes locally until the backend confirms. On
success the outcome is committed through the store, announced on the channel
so sibling clients reconcile, and handed to the notification projector.

Two guards sit in front of the network call:
  - single-flight: one in-flight submission per coordinator (the
    SubmissionToken in state["submitting"]); a second submit is refused
    synchronously.
  - quiet period: a repeat for the same record shortly after the previous
    attempt is refused, absorbing accidental double clicks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dashboard.config import settings
from dashboard.errors import (
    DashboardError,
    SubmissionInFlight,
    SubmissionThrottled,
    ValidationError,
)
from dashboard.models.records import StatusUpdateItem, StatusUpdateRequest
from dashboard.services.api_client import ApiClient
from dashboard.services.event_stream import EventStream
from dashboard.services.notification_projector import NotificationProjector
from dashboard.services.store import Store
from reconciler.kernel import actions
from reconciler.kernel.reducer import find_record
from reconciler.kernel.types import ITEM_STATUSES, KIND_ORDER, KIND_RETURN, can_transition, is_terminal, now_iso

logger = logging.getLogger(__name__)

ACTION_STATUS: dict[str, str] = {"approve": "approved", "reject": "rejected"}


@dataclass
class Outcome:
    """Result of one settled submission."""

    action_id: str
    record_id: str
    action_type: str
    status: str
    ok: bool
    settled_at: str
    adjusted_total: float | None = None
    review_notes: str | None = None
    error: DashboardError | None = None
    record: dict[str, Any] = field(default_factory=dict)


class ActionCoordinator:
    """Issues mutating requests and funnels their outcomes back."""

    def __init__(
        self,
        store: Store,
        api: ApiClient,
        stream: EventStream | None = None,
        projector: NotificationProjector | None = None,
        *,
        quiet_period: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], str] | None = None,
    ):
        self._store = store
        self._api = api
        self._stream = stream
        self._projector = projector
        self._quiet_period = quiet_period if quiet_period is not None else settings.SUBMIT_QUIET_PERIOD_SECONDS
        self._clock = clock
        self._now = now or now_iso
        self._last_attempt: dict[str, float] = {}
        self._counter = 0

    @property
    def submitting(self) -> str | None:
        return self._store.state["submitting"]

    def _guard(self, key: str) -> None:
        """Synchronous checks; raise before any network call."""
        if self.submitting is not None:
            raise SubmissionInFlight(f"submission already in flight for {self.submitting}")

        last = self._last_attempt.get(key)
        if last is not None and self._clock() - last < self._quiet_period:
            raise SubmissionThrottled(f"repeat submission for {key} ignored")

    def _record_attempt(self, key: str) -> None:
        """Start the quiet period for `key`; entries past their own quiet period are dropped."""
        now = self._clock()
        self._last_attempt = {k: t for k, t in self._last_attempt.items() if now - t < self._quiet_period}
        self._last_attempt[key] = now

    def _validate(self, record_id: str, action_type: str) -> tuple[dict[str, Any], str]:
        if action_type not in ACTION_STATUS:
            raise ValidationError(f"unknown action: {action_type}")
        record = find_record(self._store.state, record_id)
        if record is None:
            raise ValidationError(f"return {record_id} is not loaded")
        target = ACTION_STATUS[action_type]
        if is_terminal(KIND_RETURN, record.get("status")):
            raise ValidationError(f"return {record_id} is already {record.get('status')}")
        if not can_transition(KIND_RETURN, record.get("status"), target):
            raise ValidationError(f"cannot {action_type} a return that is {record.get('status')}")
        return record, target

    async def submit(self, record_id: str, action_type: str, notes: str = "") -> Outcome:
        """
        Approve or reject one return.

        Raises SubmissionInFlight / SubmissionThrottled synchronously (no
        network call), ValidationError for an action the record can't take,
        and the typed DashboardError of a failed request. State is only
        mutated after the backend confirms.
        """
        if self._store.kind != KIND_RETURN:
            raise ValueError(f"{self._store.kind} records have no approve/reject actions")
        self._guard(record_id)
        record, target = self._validate(record_id, action_type)
        self._record_attempt(record_id)

        self._counter += 1
        action_id = f"{record_id}:{action_type}:{self._counter}"
        notes = notes.strip()
        request = StatusUpdateRequest(
            items=[
                StatusUpdateItem(
                    itemId=item["itemId"],
                    productId=item.get("productId", "unknown"),
                    status=target,
                    reviewNotes=notes or None,
                )
                for item in record.get("items") or []
            ],
            reviewNotes=notes or None,
        )

        self._store.dispatch(actions.set_submitting(record_id))
        try:
            try:
                response = await self._api.update_return_status(record_id, request)
            except DashboardError as e:
                logger.warning("action_coordinator: %s %s failed: %s", action_type, record_id, e)
                self._store.dispatch(actions.set_error(e.message))
                outcome = Outcome(
                    action_id=action_id,
                    record_id=record_id,
                    action_type=action_type,
                    status=record.get("status", ""),
                    ok=False,
                    settled_at=self._now(),
                    error=e,
                    record=record,
                )
                if self._projector is not None:
                    self._projector.project_outcome(outcome)
                raise

            settled_at = self._now()
            review_notes = response.reviewNotes if response.reviewNotes is not None else notes
            self._store.dispatch(
                actions.update_status(
                    record_id,
                    target,
                    review_notes=review_notes,
                    adjusted_total=response.adjustedTotal,
                    timestamp=settled_at,
                )
            )
            outcome = Outcome(
                action_id=action_id,
                record_id=record_id,
                action_type=action_type,
                status=target,
                ok=True,
                settled_at=settled_at,
                adjusted_total=response.adjustedTotal,
                review_notes=review_notes,
                record=record,
            )
            logger.info("action_coordinator: %s %s → %s", action_type, record_id, target)

            await self._announce(outcome)
            if self._projector is not None:
                self._projector.project_outcome(outcome)
            return outcome
        finally:
            self._store.dispatch(actions.set_submitting(None))

    async def _announce(self, outcome: Outcome) -> None:
        """Outbound side effects of a confirmed status change."""
        if self._stream is None:
            return
        branch_id = (outcome.record.get("branch") or {}).get("id")
        await self._stream.emit(
            "returnStatusUpdated",
            {
                "returnId": outcome.record_id,
                "status": outcome.status,
                "reviewNotes": outcome.review_notes,
                "branchId": branch_id,
                "adjustedTotal": outcome.adjusted_total,
            },
        )
        # The inventory service listens for this; its adjustment comes back
        # as returnStatusUpdated{status: processed}.
        if outcome.status == "approved":
            await self._stream.emit("inventoryUpdated", {"branchId": branch_id})

    async def update_item(self, order_id: str, item_id: str, status: str) -> Outcome:
        """
        Report production progress for one order item.

        Same guards and wait-then-commit contract as `submit`. On success the
        item is updated through the store and `itemStatusUpdated` goes out on
        the channel. Item progress never reaches the notification feed.
        """
        if self._store.kind != KIND_ORDER:
            raise ValueError(f"{self._store.kind} records have no item progress")
        if status not in ITEM_STATUSES:
            raise ValidationError(f"unknown item status: {status}")
        key = f"{order_id}/{item_id}"
        self._guard(key)
        record = find_record(self._store.state, order_id)
        if record is None:
            raise ValidationError(f"order {order_id} is not loaded")
        if not any(i.get("itemId") == item_id for i in record.get("items") or []):
            raise ValidationError(f"order {order_id} has no item {item_id}")
        self._record_attempt(key)

        self._counter += 1
        self._store.dispatch(actions.set_submitting(order_id))
        try:
            try:
                await self._api.update_task_status(order_id, item_id, status)
            except DashboardError as e:
                logger.warning("action_coordinator: item %s → %s failed: %s", key, status, e)
                self._store.dispatch(actions.set_error(e.message))
                raise

            self._store.dispatch(actions.update_item(order_id, item_id, status))
            logger.info("action_coordinator: item %s → %s", key, status)
            if self._stream is not None:
                await self._stream.emit("itemStatusUpdated", {"orderId": order_id, "itemId": item_id, "status": status})
            return Outcome(
                action_id=f"{key}:{status}:{self._counter}",
                record_id=order_id,
                action_type="update_item",
                status=status,
                ok=True,
                settled_at=self._now(),
                record=record,
            )
        finally:
            self._store.dispatch(actions.set_submitting(None))
