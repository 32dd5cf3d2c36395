"""
Record Fetcher Module

Retrieves, for one collector, the member rows and the pending payment
request rows the statistics engine consumes. Both sets are fetched
together: a failure in either one fails the whole fetch, so no snapshot is
ever computed from partial data. Results cross the boundary as tagged
values (FetchSuccess | FetchFailure).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
import asyncio
import logging

import httpx

from .logging_config import log_action
from .records import MemberRecord, PendingPaymentRequest, InputShapeError
from .storage import AsyncStorageInterface

logger = logging.getLogger("dues.fetch")


MEMBERS_TABLE = "members"
PAYMENT_REQUESTS_TABLE = "payment_requests"
COLLECTORS_TABLE = "collectors"

MEMBER_FIELDS = (
    "yearly_payment_status",
    "emergency_collection_status",
    "yearly_payment_amount",
    "emergency_collection_amount",
    "yearly_payment_due_date",
    "payment_date",
    "payment_type",
    "status",
    "created_at",
)


class FetchError(Exception):
    """Retrieval of a collector's records failed"""

    def __init__(self, collector: str, cause: BaseException, message: Optional[str] = None):
        self.collector = collector
        self.cause = cause
        super().__init__(message or f"Failed to fetch records for collector '{collector}': {cause}")


@dataclass(frozen=True)
class CollectorRecords:
    """Both record sets for one collector from a single fetch attempt"""
    collector: str
    members: Tuple[MemberRecord, ...]
    pending_requests: Tuple[PendingPaymentRequest, ...]


@dataclass(frozen=True)
class FetchSuccess:
    records: CollectorRecords
    ok: bool = True


@dataclass(frozen=True)
class FetchFailure:
    error: FetchError
    ok: bool = False


FetchResult = Union[FetchSuccess, FetchFailure]


class RecordFetcher(ABC):
    """Abstract source of a collector's raw member and payment-request rows"""

    @abstractmethod
    async def fetch_member_rows(self, collector: str) -> List[Dict[str, Any]]:
        """Raw member rows assigned to the collector"""
        pass

    @abstractmethod
    async def fetch_pending_request_rows(self, collector: str) -> List[Dict[str, Any]]:
        """Raw pending payment-request rows for the collector"""
        pass

    async def close(self) -> None:
        """Release underlying resources (default no-op)"""
        pass

    async def fetch_records(self, collector: Optional[str]) -> Optional[CollectorRecords]:
        """
        Fetch and parse both record sets for a collector.

        Returns:
            None when no collector is selected, otherwise CollectorRecords

        Raises:
            FetchError: If either retrieval fails or a row is malformed
        """
        if collector is None:
            return None

        log_action(logger, "info", "Fetching records for collector",
                   collector=collector, action="fetch")

        results = await asyncio.gather(
            self.fetch_member_rows(collector),
            self.fetch_pending_request_rows(collector),
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, FetchError):
                raise result
            if isinstance(result, Exception):
                raise FetchError(collector, result) from result
            if isinstance(result, BaseException):
                raise result
        member_rows, request_rows = results

        try:
            members = tuple(MemberRecord.from_dict(row) for row in member_rows)
            pending = tuple(PendingPaymentRequest.from_dict(row) for row in request_rows)
        except InputShapeError as e:
            raise FetchError(collector, e) from e

        log_action(logger, "info", "Fetched records for collector",
                   collector=collector, action="fetch",
                   extra={"members": len(members), "pending_requests": len(pending)})

        return CollectorRecords(collector=collector, members=members, pending_requests=pending)

    async def fetch(self, collector: Optional[str]) -> Optional[FetchResult]:
        """
        Typed-result wrapper around fetch_records.

        Returns:
            None when no collector is selected, FetchSuccess with the
            records, or FetchFailure carrying the FetchError
        """
        if collector is None:
            return None
        try:
            records = await self.fetch_records(collector)
        except FetchError as e:
            log_action(logger, "error", f"Fetch failed: {e.cause}",
                       collector=collector, action="fetch")
            return FetchFailure(error=e)
        return FetchSuccess(records=records)


class StorageRecordFetcher(RecordFetcher):
    """Reads collector records from an async table store"""

    def __init__(self, storage: AsyncStorageInterface):
        self.storage = storage

    async def fetch_member_rows(self, collector: str) -> List[Dict[str, Any]]:
        return await self.storage.find(MEMBERS_TABLE, {"collector": collector})

    async def fetch_pending_request_rows(self, collector: str) -> List[Dict[str, Any]]:
        collectors = await self.storage.find(COLLECTORS_TABLE, {"name": collector})
        collector_ids = {str(c.get("id")) for c in collectors}
        if not collector_ids:
            return []

        requests = await self.storage.find(PAYMENT_REQUESTS_TABLE, {"status": "pending"})
        return [r for r in requests if str(r.get("collector_id")) in collector_ids]


class HttpRecordFetcher(RecordFetcher):
    """
    Reads collector records from a PostgREST (Supabase) endpoint.

    Transient failures (transport errors, 5xx, 429 and expired-JWT
    PGRST301 responses) are retried up to max_attempts calls in total.
    """

    TRANSIENT_ERROR_CODES = {"PGRST301"}

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _is_transient(self, response: httpx.Response) -> bool:
        if response.status_code >= 500 or response.status_code == 429:
            return True
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("code") in self.TRANSIENT_ERROR_CODES

    async def _get_rows(self, collector: str, table: str,
                        params: Dict[str, str]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/rest/v1/{table}"

        for attempt in range(1, self.max_attempts + 1):
            last_attempt = attempt == self.max_attempts
            try:
                response = await self._client.get(url, params=params, headers=self._headers())
            except httpx.TransportError as e:
                if last_attempt:
                    raise FetchError(collector, e) from e
                log_action(logger, "warning", f"Transport error, retrying: {e}",
                           collector=collector, action="retry", resource=table,
                           extra={"attempt": attempt})
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            if response.status_code == 200:
                try:
                    rows = response.json()
                except ValueError as e:
                    raise FetchError(collector, e) from e
                if not isinstance(rows, list):
                    shape_error = InputShapeError(table, type(rows).__name__, "expected a JSON array")
                    raise FetchError(collector, shape_error) from shape_error
                return rows

            status_error = httpx.HTTPStatusError(
                f"{table} returned {response.status_code}: {response.text}",
                request=response.request,
                response=response
            )
            if last_attempt or not self._is_transient(response):
                raise FetchError(collector, status_error) from status_error

            log_action(logger, "warning", f"Transient {response.status_code} from {table}, retrying",
                       collector=collector, action="retry", resource=table,
                       extra={"attempt": attempt})
            await asyncio.sleep(self.retry_delay * attempt)

        # Unreachable: the final attempt always returns or raises
        raise FetchError(collector, RuntimeError("no fetch attempts made"))

    async def fetch_member_rows(self, collector: str) -> List[Dict[str, Any]]:
        return await self._get_rows(collector, MEMBERS_TABLE, {
            "select": ",".join(MEMBER_FIELDS),
            "collector": f"eq.{collector}",
        })

    async def fetch_pending_request_rows(self, collector: str) -> List[Dict[str, Any]]:
        return await self._get_rows(collector, PAYMENT_REQUESTS_TABLE, {
            "select": "amount,collector_id,members_collectors!inner(name)",
            "status": "eq.pending",
            "members_collectors.name": f"eq.{collector}",
        })

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it"""
        if self._owns_client:
            await self._client.aclose()
