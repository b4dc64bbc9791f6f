"""Pydantic models for REST record payloads (orders and returns)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    """Server payloads carry Mongo-style `_id` keys and extra fields we ignore."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class BranchRef(_Wire):
    id: str = Field(alias="_id")
    name: str = ""
    nameEn: str | None = None


class ProductRef(_Wire):
    id: str = Field(default="unknown", alias="_id")
    name: str | None = None
    price: float = 0.0


class OrderRef(_Wire):
    id: str = Field(default="unknown", alias="_id")
    orderNumber: str = ""
    totalAmount: float = 0.0
    adjustedTotal: float | None = None


class ItemPayload(_Wire):
    itemId: str | None = None
    id: str | None = Field(default=None, alias="_id")
    product: ProductRef | None = None
    quantity: float = 0
    price: float | None = None
    status: str = "pending"
    assignedTo: dict[str, Any] | None = None

    def to_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "itemId": self.itemId or self.id or "unknown",
            "productId": self.product.id if self.product else "unknown",
            "quantity": self.quantity,
            "price": self.price if self.price is not None else (self.product.price if self.product else 0.0),
            "status": self.status,
        }
        if self.assignedTo is not None:
            item["assignedTo"] = self.assignedTo
        return item


class _RecordPayload(_Wire):
    id: str = Field(alias="_id", min_length=1)
    items: list[ItemPayload] = Field(default_factory=list)
    branch: BranchRef | None = None
    status: str = "pending"
    reviewNotes: str = ""
    statusHistory: list[dict[str, Any]] = Field(default_factory=list)
    createdAt: str = ""

    def _branch(self) -> dict[str, str]:
        if self.branch is None:
            return {"id": "unknown", "name": ""}
        return {"id": self.branch.id, "name": self.branch.name}


class ReturnPayload(_RecordPayload):
    """A return as `GET /returns` and `returnCreated` deliver it."""

    returnNumber: str = ""
    order: OrderRef | None = None

    def to_record(self) -> dict[str, Any]:
        order = self.order or OrderRef()
        return {
            "id": self.id,
            "kind": "return",
            "number": self.returnNumber,
            "orderNumber": order.orderNumber,
            "orderId": order.id,
            "status": self.status,
            "items": [i.to_item() for i in self.items],
            "branch": self._branch(),
            "totals": {"amount": order.totalAmount, "adjustedTotal": order.adjustedTotal},
            "reviewNotes": self.reviewNotes,
            "statusHistory": list(self.statusHistory),
            "createdAt": self.createdAt,
        }


class OrderPayload(_RecordPayload):
    """An order as `GET /orders` and `orderCreated` deliver it."""

    orderNumber: str = ""
    totalAmount: float = 0.0
    adjustedTotal: float | None = None
    priority: str = "medium"

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": "order",
            "number": self.orderNumber,
            "orderNumber": self.orderNumber,
            "status": self.status,
            "items": [i.to_item() for i in self.items],
            "branch": self._branch(),
            "totals": {"amount": self.totalAmount, "adjustedTotal": self.adjustedTotal},
            "reviewNotes": self.reviewNotes,
            "statusHistory": list(self.statusHistory),
            "createdAt": self.createdAt,
            "priority": self.priority,
        }


PAYLOAD_MODELS: dict[str, type[_RecordPayload]] = {
    "return": ReturnPayload,
    "order": OrderPayload,
}


class StatusUpdateItem(BaseModel):
    """One line of the `PATCH /returns/:id/status` body."""

    itemId: str
    productId: str
    status: str
    reviewNotes: str | None = None


class StatusUpdateRequest(BaseModel):
    """What the coordinator sends to `PATCH /returns/:id/status`."""

    model_config = {"extra": "forbid"}

    items: list[StatusUpdateItem]
    reviewNotes: str | None = None


class StatusUpdateResponse(_Wire):
    adjustedTotal: float | None = None
    reviewNotes: str | None = None
    status: str | None = None


class BranchSummary(_Wire):
    id: str = Field(alias="_id")
    name: str = ""
    nameEn: str | None = None
