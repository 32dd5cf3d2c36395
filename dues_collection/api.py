"""
FastAPI REST API Module

Serves collector statistics and dashboard summaries over HTTP. The app
wraps a single SnapshotCoordinator, so it behaves like one dashboard
session: selecting a collector replaces the previous selection.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from fastapi import FastAPI, HTTPException, Request, status
import uvicorn

from .config import DuesConfig, get_config
from .coordinator import SnapshotCoordinator, SnapshotState, LoadStatus
from .currency import Currency
from .fetcher import RecordFetcher, StorageRecordFetcher, HttpRecordFetcher
from .logging_config import setup_logging
from .statistics import CollectionPolicy
from .storage import AsyncInMemoryStorage
from .summary import summarize


def build_fetcher(config: DuesConfig) -> RecordFetcher:
    """HTTP fetcher when a record service is configured, else an in-memory store"""
    if config.supabase_url:
        return HttpRecordFetcher(
            base_url=config.supabase_url,
            api_key=config.supabase_api_key,
            timeout=config.fetch_timeout,
            max_attempts=config.fetch_max_attempts
        )
    return StorageRecordFetcher(AsyncInMemoryStorage())


def build_coordinator(config: DuesConfig) -> SnapshotCoordinator:
    return SnapshotCoordinator(
        fetcher=build_fetcher(config),
        policy=CollectionPolicy.from_config(config)
    )


def _resolved_state(state: SnapshotState, collector: str) -> SnapshotState:
    """Map a coordinator state for `collector` to a response or an HTTP error"""
    if state.status == LoadStatus.FAILED and state.collector == collector:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(state.error))
    if state.status != LoadStatus.READY or state.collector != collector:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Collector selection changed before statistics were ready"
        )
    return state


def create_app(coordinator: Optional[SnapshotCoordinator] = None,
               config: Optional[DuesConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    setup_logging(config.log_level, "dues", config.log_format, config.log_file)
    coordinator = coordinator or build_coordinator(config)
    currency = Currency[config.currency]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.coordinator.fetcher.close()

    app = FastAPI(
        title="Collector Dues Statistics",
        description="Per-collector dues collection statistics",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.coordinator = coordinator

    def get_coordinator(request: Request) -> SnapshotCoordinator:
        return request.app.state.coordinator

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/state")
    async def get_state(request: Request) -> Dict[str, Any]:
        """Current selection and load status"""
        state = get_coordinator(request).state
        return {
            "status": state.status.value,
            "collector": state.collector,
            "error": str(state.error) if state.error else None
        }

    @app.delete("/selection")
    async def clear_selection(request: Request) -> Dict[str, Any]:
        """Deselect the collector"""
        state = await get_coordinator(request).select(None)
        return {"status": state.status.value}

    @app.get("/collectors/{name}/statistics")
    async def get_statistics(name: str, request: Request) -> Dict[str, Any]:
        """Statistics snapshot for a collector"""
        state = _resolved_state(await get_coordinator(request).select(name), name)
        return state.snapshot.to_dict()

    @app.get("/collectors/{name}/summary")
    async def get_summary(name: str, request: Request) -> Dict[str, Any]:
        """Snapshot plus completion percentages and expected totals"""
        coordinator = get_coordinator(request)
        state = _resolved_state(await coordinator.select(name), name)
        return summarize(state.snapshot, coordinator.policy, currency).to_dict()

    @app.post("/collectors/{name}/refresh")
    async def refresh_statistics(name: str, request: Request) -> Dict[str, Any]:
        """Refetch a collector's records and return fresh statistics"""
        coordinator = get_coordinator(request)
        if coordinator.current_collector == name:
            state = await coordinator.refresh()
        else:
            state = await coordinator.select(name)
        return _resolved_state(state, name).snapshot.to_dict()

    return app


def run_server(host: str = "0.0.0.0", port: int = 8095, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "dues_collection.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
