"""
Tests for SnapshotFetcher.

Stale-response suppression, error handling that keeps existing data, and
search debouncing.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from dashboard.errors import NetworkError, ServerError
from dashboard.services.snapshot_fetcher import SnapshotFetcher
from dashboard.services.store import Store
from reconciler.kernel import actions

pytestmark = pytest.mark.asyncio


@pytest.fixture
def store():
    return Store("return")


@pytest.fixture
def fetcher(store, api):
    return SnapshotFetcher(store, api, search_debounce=0.01)


class TestFetch:
    async def test_refresh_applies_page(self, fetcher, store, backend, make_return):
        backend.returns = [make_return(f"r{n}") for n in range(10)]
        backend.total = 42

        snapshot = await fetcher.refresh()

        assert snapshot.applied
        assert snapshot.seq == 1
        assert len(store.state["records"]) == 10
        assert store.state["view"]["totalCount"] == 42

    async def test_refresh_uses_view_params(self, fetcher, store, backend):
        await fetcher.refresh()
        params = backend.requests[-1].url.params
        assert params["sortBy"] == "date"
        assert params["sortOrder"] == "desc"
        assert params["page"] == "1"
        assert params["limit"] == "10"
        assert "status" not in params

    async def test_sequence_increases(self, fetcher, store):
        await fetcher.refresh()
        await fetcher.refresh()
        assert store.state["lastSeq"] == 2
        assert store.state["appliedSeq"] == 2


class TestStaleSuppression:
    async def test_older_response_arriving_last_is_dropped(self, fetcher, store, backend, make_return, wait_until):
        backend.returns = [make_return("a1", number="A-1"), make_return("b1", number="B-1")]
        gate = backend.gates[1] = asyncio.Event()

        task_a = asyncio.create_task(fetcher.fetch({"search": "A", "page": 1, "limit": 10}))
        await wait_until(lambda: len(backend.requests) == 1)

        snap_b = await fetcher.fetch({"search": "B", "page": 1, "limit": 10})
        assert snap_b.applied

        gate.set()
        snap_a = await task_a

        assert not snap_a.applied
        assert [r["id"] for r in store.state["records"]] == ["b1"]
        assert store.state["appliedSeq"] == snap_b.seq

    async def test_stale_failure_is_swallowed(self, fetcher, store, backend, make_return, wait_until):
        backend.returns = [make_return("r1")]
        gate = backend.gates[1] = asyncio.Event()

        task_a = asyncio.create_task(fetcher.refresh())
        await wait_until(lambda: len(backend.requests) == 1)
        await fetcher.refresh()

        # Request 1 picks this up once released.
        backend.failures = [(500, {"message": "late failure"})]
        gate.set()

        snap_a = await task_a
        assert not snap_a.applied
        assert store.state["error"] is None
        assert [r["id"] for r in store.state["records"]] == ["r1"]


class TestErrors:
    async def test_failure_keeps_existing_records(self, fetcher, store, backend, make_return):
        backend.returns = [make_return("r1"), make_return("r2")]
        await fetcher.refresh()

        backend.failures = [httpx.ReadTimeout("slow")]
        with pytest.raises(NetworkError):
            await fetcher.refresh()

        assert [r["id"] for r in store.state["records"]] == ["r1", "r2"]
        assert "timed out" in store.state["error"]

    async def test_next_success_clears_error(self, fetcher, store, backend):
        backend.failures = [(502, {"message": "bad gateway"})]
        with pytest.raises(ServerError):
            await fetcher.refresh()
        assert store.state["error"] == "bad gateway"

        await fetcher.refresh()
        assert store.state["error"] is None


class TestSearchDebounce:
    async def test_only_last_query_fetched(self, fetcher, store, backend, make_return):
        backend.returns = [make_return("r1", number="RET-ABC"), make_return("r2", number="RET-XYZ")]

        first = fetcher.search("a")
        fetcher.search("ab")
        last = fetcher.search(" abc ")
        snapshot = await last

        assert first.cancelled()
        gets = backend.requests_to("/returns")
        assert len(gets) == 1
        assert gets[0].url.params["search"] == "abc"
        assert store.state["view"]["searchQuery"] == "abc"
        assert snapshot.applied
        assert [r["id"] for r in store.state["records"]] == ["r1"]

    async def test_search_resets_page(self, fetcher, store, backend):
        store.dispatch(actions.set_page(4))
        await fetcher.search("x")
        assert store.state["view"]["currentPage"] == 1
        assert backend.requests[-1].url.params["page"] == "1"

    async def test_search_failure_surfaced_in_state(self, fetcher, store, backend):
        backend.failures = [(500, {"message": "search down"})]
        result = await fetcher.search("x")
        assert result is None
        assert store.state["error"] == "search down"

    async def test_cancel_pending(self, fetcher, backend):
        task = fetcher.search("abc")
        fetcher.cancel_pending()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert backend.requests == []
