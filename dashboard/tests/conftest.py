"""
Pytest configuration and fixtures for dashboard service tests.

The REST backend is an in-memory FakeBackend behind httpx.MockTransport; the
real-time channel is a LoopbackTransport. Nothing leaves the process.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
import pytest_asyncio

from dashboard.services.api_client import ApiClient
from dashboard.services.event_stream import LoopbackTransport, RoomIdentity

API_URL = "http://dashboard.test/api"


def return_payload(rid: str, *, status: str = "pending", branch: str = "b1", number: str | None = None,
                   total: float = 100.0, created_at: str = "2026-01-01T10:00:00Z") -> dict[str, Any]:
    """A return as the backend serializes it."""
    return {
        "_id": rid,
        "returnNumber": number or f"RET-{rid}",
        "order": {"_id": f"o-{rid}", "orderNumber": f"ORD-{rid}", "totalAmount": total},
        "items": [{"itemId": f"{rid}-i1", "product": {"_id": "p1", "name": "Croissant", "price": 5.0},
                   "quantity": 2, "price": 5.0, "status": "pending"}],
        "branch": {"_id": branch, "name": f"Branch {branch}"},
        "status": status,
        "reviewNotes": "",
        "createdAt": created_at,
    }


def order_payload(oid: str, *, status: str = "approved", branch: str = "b1", items: int = 2) -> dict[str, Any]:
    return {
        "_id": oid,
        "orderNumber": f"ORD-{oid}",
        "totalAmount": 10.0 * items,
        "priority": "medium",
        "items": [
            {"_id": f"{oid}-i{n}", "product": {"_id": f"p{n}", "name": f"Loaf {n}", "price": 10.0},
             "quantity": 1, "status": "pending"}
            for n in range(1, items + 1)
        ],
        "branch": {"_id": branch, "name": f"Branch {branch}"},
        "status": status,
        "createdAt": "2026-01-01T10:00:00Z",
    }


class FakeBackend:
    """
    Just enough of the REST API for the services.

    - `returns` / `orders`: wire payloads served by GET, filtered by the
      status/branch/search params and windowed by page/limit.
    - `total`: overrides the reported total when set.
    - `failures`: queued (status, body) tuples or exceptions, consumed one per
      request before normal handling.
    - `gates`: request number (1-based) → asyncio.Event the request waits on.
    """

    def __init__(self) -> None:
        self.returns: list[dict[str, Any]] = []
        self.orders: list[dict[str, Any]] = []
        self.branches: list[dict[str, Any]] = [{"_id": "b1", "name": "Downtown"}, {"_id": "b2", "name": "Harbor"}]
        self.total: int | None = None
        self.status_response: dict[str, Any] = {"adjustedTotal": None}
        self.failures: list[Any] = []
        self.gates: dict[int, asyncio.Event] = {}
        self.requests: list[httpx.Request] = []

    def requests_to(self, suffix: str, method: str = "GET") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        gate = self.gates.get(len(self.requests))
        if gate is not None:
            await gate.wait()

        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            status, body = failure
            return httpx.Response(status, json=body)

        path = request.url.path
        if request.method == "PATCH" and path.endswith("/status"):
            return httpx.Response(200, json=self.status_response)
        if path.endswith("/returns"):
            return httpx.Response(200, json=self._page(self.returns, request, "returnNumber", "returns"))
        if path.endswith("/orders"):
            return httpx.Response(200, json=self._page(self.orders, request, "orderNumber", "orders"))
        if path.endswith("/branches"):
            return httpx.Response(200, json=self.branches)
        return httpx.Response(404, json={"message": "no route"})

    def _page(self, rows: list[dict[str, Any]], request: httpx.Request, number_field: str, key: str) -> dict:
        params = request.url.params
        hits = rows
        if params.get("status"):
            hits = [r for r in hits if r["status"] == params["status"]]
        if params.get("branch"):
            hits = [r for r in hits if r["branch"]["_id"] == params["branch"]]
        if params.get("search"):
            needle = params["search"].lower()
            hits = [r for r in hits if needle in r[number_field].lower()]
        page = int(params.get("page", 1))
        limit = int(params.get("limit", 10))
        window = hits[(page - 1) * limit : page * limit]
        return {key: window, "total": self.total if self.total is not None else len(hits)}


async def settle(condition, rounds: int = 200) -> None:
    """Yield to the loop until `condition()` holds."""
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def api(backend):
    client = ApiClient(API_URL, token="test-token", transport=httpx.MockTransport(backend.handler))
    yield client
    await client.aclose()


@pytest.fixture
def transport():
    return LoopbackTransport()


@pytest.fixture
def identity():
    return RoomIdentity(role="admin", user_id="u-admin")


@pytest.fixture
def make_return():
    return return_payload


@pytest.fixture
def make_order():
    return order_payload


@pytest.fixture
def wait_until():
    return settle


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
