"""
Record Storage Module

In-memory storage of raw record rows keyed by table, with an async
interface for the record fetcher. Rows are stored as JSON-compatible
dicts; Decimal and datetime values are kept as strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
import asyncio
import json
import threading


class InMemoryStorage:
    """Thread-safe in-memory table storage"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # Round-trip through JSON to detach callers from stored rows
        return json.loads(json.dumps(record, default=str))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._data.setdefault(table, {})[record_id] = self._copy(data)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Rows whose fields equal every filter value"""
        with self._lock:
            return [
                self._copy(record)
                for record in self._data.get(table, {}).values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]


class AsyncStorageInterface(ABC):
    """Abstract interface for async record sources"""

    @abstractmethod
    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    async def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass


class AsyncInMemoryStorage(AsyncStorageInterface):
    """Async wrapper around InMemoryStorage"""

    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self._sync_storage = storage if storage is not None else InMemoryStorage()
        self._lock = asyncio.Lock()

    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._sync_storage.save, table, record_id, data)

    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.find, table, filters)
