"""
Pydantic models for the dashboard services.

Wire shapes only. No imports from services.
"""

from dashboard.models.events import (
    INBOUND_KINDS,
    ItemStatusUpdated,
    OrderCompleted,
    OrderCreated,
    OrderStatusUpdated,
    ReturnCreated,
    ReturnStatusUpdated,
    TaskAssigned,
    TaskCompleted,
    parse_event,
)
from dashboard.models.records import (
    PAYLOAD_MODELS,
    BranchSummary,
    OrderPayload,
    ReturnPayload,
    StatusUpdateItem,
    StatusUpdateRequest,
    StatusUpdateResponse,
)

__all__ = [
    "INBOUND_KINDS",
    "PAYLOAD_MODELS",
    "BranchSummary",
    "ItemStatusUpdated",
    "OrderCompleted",
    "OrderCreated",
    "OrderPayload",
    "OrderStatusUpdated",
    "ReturnCreated",
    "ReturnPayload",
    "ReturnStatusUpdated",
    "StatusUpdateItem",
    "StatusUpdateRequest",
    "StatusUpdateResponse",
    "TaskAssigned",
    "TaskCompleted",
    "parse_event",
]
