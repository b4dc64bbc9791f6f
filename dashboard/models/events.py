"""
Pydantic schema for inbound real-time events.

Every push payload is validated here, at the stream boundary, into one member
of a tagged union discriminated on `kind` (the channel event name). Payloads
that fail validation never reach the reducer.
"""

from __future__ import annotations

import hashlib
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from dashboard.models.records import OrderPayload, ReturnPayload


class _EventFields(BaseModel):
    """Envelope fields shared by every inbound event."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    eventId: str | None = None
    timestamp: str | None = None

    @property
    def target_record_id(self) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    @property
    def event_id(self) -> str:
        """
        Dedup key. Falls back to a content fingerprint when the sender did
        not stamp an id, so a redelivered payload still dedups.
        """
        if self.eventId:
            return self.eventId
        body = self.model_dump(mode="json", by_alias=True, exclude={"eventId"})
        digest = hashlib.sha1(json.dumps(body, sort_keys=True).encode()).hexdigest()[:16]
        return f"{self.kind}:{digest}"  # type: ignore[attr-defined]


# ---------------------------------------------------------------------------
# Creation events
# ---------------------------------------------------------------------------


class ReturnCreated(ReturnPayload, _EventFields):
    kind: Literal["returnCreated"]

    @property
    def target_record_id(self) -> str:
        return self.id


class OrderCreated(OrderPayload, _EventFields):
    kind: Literal["orderCreated"]

    @property
    def target_record_id(self) -> str:
        return self.id


# ---------------------------------------------------------------------------
# Status events
# ---------------------------------------------------------------------------


class ReturnStatusUpdated(_EventFields):
    kind: Literal["returnStatusUpdated"]
    returnId: str = Field(min_length=1)
    status: str = Field(min_length=1)
    reviewNotes: str | None = None
    adjustedTotal: float | None = None
    branchId: str | None = None
    orderId: str | None = None
    returnNumber: str | None = None

    @property
    def target_record_id(self) -> str:
        return self.returnId


class OrderStatusUpdated(_EventFields):
    kind: Literal["orderStatusUpdated"]
    orderId: str = Field(min_length=1)
    status: str = Field(min_length=1)
    orderNumber: str | None = None
    branchId: str | None = None
    branchName: str | None = None

    @property
    def target_record_id(self) -> str:
        return self.orderId


class OrderCompleted(_EventFields):
    kind: Literal["orderCompleted"]
    orderId: str = Field(min_length=1)
    orderNumber: str | None = None
    branchName: str | None = None

    @property
    def target_record_id(self) -> str:
        return self.orderId


class ItemStatusUpdated(_EventFields):
    kind: Literal["itemStatusUpdated"]
    orderId: str = Field(min_length=1)
    itemId: str = Field(min_length=1)
    status: str = Field(min_length=1)
    orderNumber: str | None = None
    branchName: str | None = None
    chefId: str | None = None

    @property
    def target_record_id(self) -> str:
        return self.orderId


# ---------------------------------------------------------------------------
# Task events
# ---------------------------------------------------------------------------


class TaskItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(alias="_id", min_length=1)
    assignedTo: dict[str, Any] | None = None
    status: str | None = None
    quantity: float | None = None
    product: dict[str, Any] | None = None


class TaskAssigned(_EventFields):
    kind: Literal["taskAssigned"]
    orderId: str = Field(min_length=1)
    orderNumber: str | None = None
    branchName: str | None = None
    items: list[TaskItem] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, data: Any) -> Any:
        # Some senders nest the task under "data" alongside the envelope.
        if isinstance(data, dict) and isinstance(data.get("data"), dict) and "orderId" not in data:
            inner = dict(data["data"])
            inner.setdefault("kind", data.get("kind"))
            inner.setdefault("eventId", data.get("eventId"))
            return inner
        return data

    @property
    def target_record_id(self) -> str:
        return self.orderId


class TaskCompleted(_EventFields):
    kind: Literal["taskCompleted"]
    orderId: str = Field(min_length=1)
    taskId: str | None = None
    itemId: str | None = None
    orderNumber: str | None = None
    productName: str | None = None

    @property
    def target_record_id(self) -> str:
        return self.orderId


InboundEvent = Annotated[
    Union[
        ReturnCreated,
        OrderCreated,
        ReturnStatusUpdated,
        OrderStatusUpdated,
        OrderCompleted,
        ItemStatusUpdated,
        TaskAssigned,
        TaskCompleted,
    ],
    Field(discriminator="kind"),
]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(InboundEvent)

INBOUND_KINDS: frozenset[str] = frozenset(
    {
        "returnCreated",
        "orderCreated",
        "returnStatusUpdated",
        "orderStatusUpdated",
        "orderCompleted",
        "itemStatusUpdated",
        "taskAssigned",
        "taskCompleted",
    }
)


def parse_event(name: str, data: Any) -> Any:
    """
    Validate a raw channel payload into its tagged event model.

    Raises pydantic.ValidationError for malformed payloads and unknown names.
    """
    body = dict(data) if isinstance(data, dict) else {"_raw": data}
    body["kind"] = name
    return _ADAPTER.validate_python(body)
