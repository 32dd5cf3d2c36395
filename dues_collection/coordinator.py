"""
Snapshot Cache / Refresh Coordinator

Owns the statistics snapshot for the currently selected collector. A
selection change drops the prior snapshot, fetches both record sets and
publishes the new snapshot; re-selecting the same collector returns the
cached result without fetching again.

Every load takes a new generation number and only the load holding the
current generation may publish. A response that arrives after the
selection moved on is discarded, so a snapshot for one collector is never
published while another is selected.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from enum import Enum
import asyncio
import logging

from .fetcher import RecordFetcher, FetchError, FetchFailure
from .logging_config import log_action
from .statistics import StatisticsSnapshot, CollectionPolicy, DEFAULT_POLICY, compute_snapshot

logger = logging.getLogger("dues.cache")


class LoadStatus(Enum):
    """Observable state of the coordinator"""
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"     # no collector selected
    FAILED = "failed"               # fetch failed; nothing partial is shown


@dataclass(frozen=True)
class SnapshotState:
    """Published state: status plus the snapshot or error it carries"""
    status: LoadStatus
    collector: Optional[str] = None
    snapshot: Optional[StatisticsSnapshot] = None
    error: Optional[FetchError] = None

    @classmethod
    def unavailable(cls) -> 'SnapshotState':
        return cls(status=LoadStatus.UNAVAILABLE)

    @classmethod
    def loading(cls, collector: str) -> 'SnapshotState':
        return cls(status=LoadStatus.LOADING, collector=collector)

    @classmethod
    def ready(cls, collector: str, snapshot: StatisticsSnapshot) -> 'SnapshotState':
        return cls(status=LoadStatus.READY, collector=collector, snapshot=snapshot)

    @classmethod
    def failed(cls, collector: str, error: FetchError) -> 'SnapshotState':
        return cls(status=LoadStatus.FAILED, collector=collector, error=error)

    @property
    def is_ready(self) -> bool:
        return self.status == LoadStatus.READY


@dataclass
class _CacheEntry:
    collector: str
    generation: int
    state: Optional[SnapshotState] = None  # None while the fetch is in flight
    done: asyncio.Event = field(default_factory=asyncio.Event)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


StateListener = Callable[[SnapshotState], None]


class SnapshotCoordinator:
    """
    Per-collector snapshot cache with stale-response suppression
    """

    def __init__(
        self,
        fetcher: RecordFetcher,
        policy: CollectionPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = utc_now
    ):
        self.fetcher = fetcher
        self.policy = policy
        self.clock = clock
        self._entry: Optional[_CacheEntry] = None
        self._key: Optional[str] = None
        self._generation = 0
        self._state = SnapshotState.unavailable()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> SnapshotState:
        return self._state

    @property
    def current_collector(self) -> Optional[str]:
        return self._key

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for published states; returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: SnapshotState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    async def select(self, collector: Optional[str]) -> SnapshotState:
        """
        Select a collector and return its state once resolved.

        None publishes UNAVAILABLE without fetching. The current collector
        with a cached snapshot is returned as-is; a fetch already in flight
        for it is awaited rather than repeated. A collector whose last fetch
        failed is fetched again. Anything else starts a load.
        """
        if collector is None:
            self._generation += 1
            self._key = None
            self._entry = None
            self._publish(SnapshotState.unavailable())
            return self._state

        entry = self._entry
        if collector == self._key and entry is not None:
            if entry.state is None:
                await entry.done.wait()
                # Superseded while in flight: report whatever is current now
                return entry.state if entry.state is not None else self._state
            if entry.state.status != LoadStatus.FAILED:
                return entry.state

        return await self._load(collector)

    async def refresh(self) -> SnapshotState:
        """Invalidate the current collector's snapshot and fetch it again"""
        if self._key is None:
            return self._state
        return await self._load(self._key)

    def invalidate(self) -> None:
        """Drop the cached snapshot; the next select fetches again"""
        self._entry = None

    async def _load(self, collector: str) -> SnapshotState:
        self._generation += 1
        generation = self._generation
        self._key = collector

        entry = _CacheEntry(collector=collector, generation=generation)
        self._entry = entry
        self._publish(SnapshotState.loading(collector))

        try:
            state = await self._resolve(collector, generation)
            if state is None:
                return self._state

            entry.state = state
            self._publish(state)
            log_action(logger, "info", f"Published {state.status.value} state",
                       collector=collector, action="publish")
            return state
        finally:
            if entry.state is None and self._entry is entry:
                self._entry = None
            entry.done.set()

    async def _resolve(self, collector: str, generation: int) -> Optional[SnapshotState]:
        """Fetch and compute; None when a newer load has taken over"""
        try:
            result = await self.fetcher.fetch(collector)
            if generation != self._generation:
                self._log_stale(collector, generation)
                return None
            if isinstance(result, FetchFailure):
                return SnapshotState.failed(collector, result.error)

            records = result.records
            snapshot = compute_snapshot(
                records.members, records.pending_requests, self.clock(), self.policy
            )
            return SnapshotState.ready(collector, snapshot)
        except Exception as e:
            if generation != self._generation:
                self._log_stale(collector, generation)
                return None
            log_action(logger, "error", f"Snapshot load failed: {e}",
                       collector=collector, action="load", exc_info=e)
            return SnapshotState.failed(collector, FetchError(collector, e))

    def _log_stale(self, collector: str, generation: int) -> None:
        log_action(logger, "info", "Discarding stale fetch result",
                   collector=collector, action="discard",
                   extra={"generation": generation, "current_generation": self._generation})
