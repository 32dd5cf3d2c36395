"""
Tests for the record fetchers

Covers the storage-backed fetcher, the PostgREST HTTP fetcher (via
httpx.MockTransport), all-or-nothing failure and the typed result boundary.
"""

import pytest
import pytest_asyncio
import httpx
from decimal import Decimal
from typing import Any, Dict, List

from dues_collection.fetcher import (
    RecordFetcher, StorageRecordFetcher, HttpRecordFetcher, FetchError,
    FetchSuccess, FetchFailure, CollectorRecords, MEMBER_FIELDS
)
from dues_collection.records import PaymentStatus, InputShapeError
from dues_collection.storage import AsyncInMemoryStorage


pytest_plugins = ('pytest_asyncio',)


class StaticFetcher(RecordFetcher):
    """Fetcher returning fixed rows, or raising a given exception per set"""

    def __init__(self, members=None, requests=None, members_error=None, requests_error=None):
        self.members = members or []
        self.requests = requests or []
        self.members_error = members_error
        self.requests_error = requests_error

    async def fetch_member_rows(self, collector: str) -> List[Dict[str, Any]]:
        if self.members_error:
            raise self.members_error
        return self.members

    async def fetch_pending_request_rows(self, collector: str) -> List[Dict[str, Any]]:
        if self.requests_error:
            raise self.requests_error
        return self.requests


class TestRecordFetcherContract:
    """Behaviour shared by every fetcher"""

    @pytest.mark.asyncio
    async def test_no_collector_returns_none(self):
        fetcher = StaticFetcher()

        assert await fetcher.fetch_records(None) is None
        assert await fetcher.fetch(None) is None

    @pytest.mark.asyncio
    async def test_success_parses_both_sets(self):
        fetcher = StaticFetcher(
            members=[{"yearly_payment_status": "completed"}, {"status": "active"}],
            requests=[{"amount": "40", "collector_id": "1"}]
        )

        records = await fetcher.fetch_records("Alice")

        assert isinstance(records, CollectorRecords)
        assert records.collector == "Alice"
        assert len(records.members) == 2
        assert records.members[0].yearly_payment_status == PaymentStatus.COMPLETED
        assert records.pending_requests[0].amount == Decimal('40')

    @pytest.mark.asyncio
    async def test_member_failure_fails_whole_fetch(self):
        cause = ConnectionError("members unavailable")
        fetcher = StaticFetcher(requests=[{"amount": 1}], members_error=cause)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_records("Alice")

        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert exc_info.value.collector == "Alice"

    @pytest.mark.asyncio
    async def test_request_failure_fails_whole_fetch(self):
        fetcher = StaticFetcher(members=[{}], requests_error=TimeoutError("slow"))

        with pytest.raises(FetchError):
            await fetcher.fetch_records("Alice")

    @pytest.mark.asyncio
    async def test_malformed_row_surfaces_as_fetch_error(self):
        fetcher = StaticFetcher(requests=[{"amount": "lots"}])

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch_records("Alice")

        assert isinstance(exc_info.value.cause, InputShapeError)

    @pytest.mark.asyncio
    async def test_fetch_returns_tagged_results(self):
        ok = await StaticFetcher(members=[{}]).fetch("Alice")
        failed = await StaticFetcher(members_error=RuntimeError("boom")).fetch("Alice")

        assert isinstance(ok, FetchSuccess)
        assert ok.ok is True
        assert len(ok.records.members) == 1

        assert isinstance(failed, FetchFailure)
        assert failed.ok is False
        assert isinstance(failed.error, FetchError)


class TestStorageRecordFetcher:
    """StorageRecordFetcher over the in-memory store"""

    @pytest_asyncio.fixture
    async def storage(self):
        storage = AsyncInMemoryStorage()
        await storage.save("collectors", "c1", {"id": "c1", "name": "Alice"})
        await storage.save("collectors", "c2", {"id": "c2", "name": "Bob"})

        await storage.save("members", "m1", {
            "collector": "Alice", "yearly_payment_status": "completed",
            "yearly_payment_amount": None, "status": "active"
        })
        await storage.save("members", "m2", {
            "collector": "Alice", "yearly_payment_status": "pending",
            "yearly_payment_due_date": "2020-01-01", "status": "inactive"
        })
        await storage.save("members", "m3", {"collector": "Bob", "status": "active"})

        await storage.save("payment_requests", "p1", {"amount": "40", "collector_id": "c1", "status": "pending"})
        await storage.save("payment_requests", "p2", {"amount": 15, "collector_id": "c1", "status": "approved"})
        await storage.save("payment_requests", "p3", {"amount": "20", "collector_id": "c2", "status": "pending"})
        return storage

    @pytest.mark.asyncio
    async def test_filters_by_collector(self, storage):
        records = await StorageRecordFetcher(storage).fetch_records("Alice")

        assert len(records.members) == 2
        assert len(records.pending_requests) == 1
        assert records.pending_requests[0].amount == Decimal('40')

    @pytest.mark.asyncio
    async def test_unknown_collector_is_empty(self, storage):
        records = await StorageRecordFetcher(storage).fetch_records("Nobody")

        assert records.members == ()
        assert records.pending_requests == ()


def _json(request: httpx.Request, payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload, request=request)


class TestHttpRecordFetcher:
    """HttpRecordFetcher against a mocked PostgREST service"""

    def _fetcher(self, handler, **kwargs) -> HttpRecordFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpRecordFetcher(
            base_url="https://db.example.org/",
            api_key="anon-key",
            retry_delay=0,
            client=client,
            **kwargs
        )

    @pytest.mark.asyncio
    async def test_query_shape_and_headers(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/members"):
                return _json(request, [{"yearly_payment_status": "completed"}])
            return _json(request, [{"amount": "12.50", "collector_id": 3}])

        fetcher = self._fetcher(handler)
        records = await fetcher.fetch_records("Alice")

        assert len(records.members) == 1
        assert records.pending_requests[0].amount == Decimal('12.50')

        by_path = {r.url.path: r for r in seen}
        members_request = by_path["/rest/v1/members"]
        assert members_request.url.params["collector"] == "eq.Alice"
        assert members_request.url.params["select"] == ",".join(MEMBER_FIELDS)
        assert members_request.headers["apikey"] == "anon-key"
        assert members_request.headers["Authorization"] == "Bearer anon-key"

        requests_request = by_path["/rest/v1/payment_requests"]
        assert requests_request.url.params["status"] == "eq.pending"
        assert requests_request.url.params["members_collectors.name"] == "eq.Alice"

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        calls = {"members": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/members"):
                calls["members"] += 1
                if calls["members"] == 1:
                    return _json(request, {"code": "PGRST301", "message": "JWT expired"}, 401)
                if calls["members"] == 2:
                    return _json(request, {"message": "unavailable"}, 503)
                return _json(request, [{}])
            return _json(request, [])

        records = await self._fetcher(handler).fetch_records("Alice")

        assert calls["members"] == 3
        assert len(records.members) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/members"):
                calls["count"] += 1
                return _json(request, {"message": "down"}, 500)
            return _json(request, [])

        with pytest.raises(FetchError) as exc_info:
            await self._fetcher(handler, max_attempts=3).fetch_records("Alice")

        assert calls["count"] == 3
        assert isinstance(exc_info.value.cause, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/payment_requests"):
                calls["count"] += 1
                return _json(request, {"code": "42501", "message": "permission denied"}, 403)
            return _json(request, [])

        result = await self._fetcher(handler).fetch("Alice")

        assert isinstance(result, FetchFailure)
        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried_then_fails(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/members"):
                calls["count"] += 1
                raise httpx.ConnectError("connection refused", request=request)
            return _json(request, [])

        with pytest.raises(FetchError) as exc_info:
            await self._fetcher(handler, max_attempts=2).fetch_records("Alice")

        assert calls["count"] == 2
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_non_list_payload_is_shape_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return _json(request, {"rows": []})

        with pytest.raises(FetchError) as exc_info:
            await self._fetcher(handler).fetch_records("Alice")

        assert isinstance(exc_info.value.cause, InputShapeError)

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: _json(r, [])))
        fetcher = HttpRecordFetcher(base_url="https://db.example.org", client=client)

        await fetcher.close()

        assert client.is_closed is False
        await client.aclose()
