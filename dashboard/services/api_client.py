"""HTTP client for the dashboard REST backend."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from dashboard.config import settings
from dashboard.errors import DashboardError, from_transport_error, raise_for_response
from dashboard.models.records import (
    PAYLOAD_MODELS,
    BranchSummary,
    StatusUpdateRequest,
    StatusUpdateResponse,
)

logger = logging.getLogger(__name__)

_COLLECTIONS = {"return": "/returns", "order": "/orders"}


class ApiClient:
    """
    Async HTTP client for the dashboard API.

    Every call is bounded by `timeout`; a timeout surfaces as
    NetworkError(timeout=True), distinct from 4xx/5xx responses.
    """

    def __init__(
        self,
        api_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = (api_url or settings.API_URL).rstrip("/")
        self.token = token if token is not None else settings.API_TOKEN
        self.client = httpx.AsyncClient(
            base_url=self.api_url,
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _headers(self) -> dict:
        """Build request headers."""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            res = await self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            raise from_transport_error(e) from e
        raise_for_response(res)
        try:
            return res.json()
        except ValueError as e:
            raise DashboardError(f"invalid JSON from {method} {path}", status_code=res.status_code) from e

    async def get(self, path: str, params: dict | None = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params or {})

    async def patch(self, path: str, data: dict) -> Any:
        """Make PATCH request."""
        return await self._request("PATCH", path, json=data)

    async def list_records(self, kind: str, params: dict[str, Any]) -> tuple[list[dict[str, Any]], int]:
        """
        GET /returns or /orders with the view's query parameters.

        Returns (records, total). Items that fail validation are skipped with a
        warning; the server total is passed through untouched and falls back to
        the page length when the server leaves it out.
        """
        path = _COLLECTIONS[kind]
        body = await self.get(path, params)
        if isinstance(body, list):
            raw_items, total = body, len(body)
        elif isinstance(body, dict):
            raw_items = body.get("items")
            if raw_items is None:
                raw_items = body.get(path.lstrip("/"), [])
            total = body.get("total")
        else:
            raise DashboardError(f"unexpected response shape from GET {path}")

        if not isinstance(raw_items, list):
            raise DashboardError(f"invalid items from GET {path}")
        if not isinstance(total, int) or isinstance(total, bool):
            total = len(raw_items)

        model = PAYLOAD_MODELS[kind]
        records: list[dict[str, Any]] = []
        for raw in raw_items:
            try:
                records.append(model.model_validate(raw).to_record())
            except PydanticValidationError as e:
                logger.warning("api_client: skipping malformed %s: %s", kind, e.errors()[:1])
        return records, total

    async def update_return_status(self, return_id: str, request: StatusUpdateRequest) -> StatusUpdateResponse:
        """PATCH /returns/:id/status → {adjustedTotal}."""
        body = await self.patch(f"/returns/{return_id}/status", request.model_dump(exclude_none=True))
        return StatusUpdateResponse.model_validate(body or {})

    async def update_task_status(self, order_id: str, task_id: str, status: str) -> Any:
        """PATCH /orders/:id/tasks/:taskId/status."""
        return await self.patch(f"/orders/{order_id}/tasks/{task_id}/status", {"status": status})

    async def list_branches(self) -> list[BranchSummary]:
        body = await self.get("/branches")
        items = body.get("items", []) if isinstance(body, dict) else body
        return [BranchSummary.model_validate(b) for b in items or []]

    async def aclose(self) -> None:
        """Close client."""
        await self.client.aclose()
