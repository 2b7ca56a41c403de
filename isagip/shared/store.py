import asyncio
import copy
import json
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Set

import asyncpg

from .db import get_db_connection
from .errors import BackendUnavailable

logger = logging.getLogger("shared.store")

_DELETED = object()

CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.InterfaceError,
)


@dataclass
class _Transaction:
    handle: Any
    touched: Set[str] = field(default_factory=set)


def matches(record: dict, filters: Optional[dict]) -> bool:
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


class RecordStore:
    """Pluggable record store with read, write and subscribe capabilities.

    Records are JSON-compatible dicts addressed by ``(collection, id)``. Every
    write bumps the record's ``version``. Mutations that must be seen all at
    once run inside ``transaction()``; subscribers are woken after commit.
    """
    name = "store"

    def __init__(self):
        self.available = True
        self._lock = asyncio.Lock()
        self._tx: ContextVar[Optional[_Transaction]] = ContextVar(f"{self.name}_tx_{id(self)}", default=None)
        self._subscribers: Dict[str, Set[asyncio.Queue]] = {}

    async def read_record(self, collection: str, record_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def write_record(self, collection: str, record_id: str, record: dict) -> dict:
        raise NotImplementedError

    async def delete_record(self, collection: str, record_id: str) -> bool:
        raise NotImplementedError

    async def list_records(self, collection: str, filters: Optional[dict] = None) -> List[dict]:
        raise NotImplementedError

    def transaction(self):
        raise NotImplementedError

    async def subscribe(self, collection: str, filters: Optional[dict] = None) -> AsyncIterator[List[dict]]:
        """Yield the current record set, then a fresh one after every committed change"""
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._subscribers.setdefault(collection, set()).add(queue)
        logger.debug(f"Subscriber added to '{collection}' with filters {filters}")
        try:
            yield await self.list_records(collection, filters)
            while True:
                await queue.get()
                yield await self.list_records(collection, filters)
        finally:
            subscribers = self._subscribers.get(collection)
            if subscribers is not None:
                subscribers.discard(queue)
            logger.debug(f"Subscriber removed from '{collection}'")

    def _publish(self, collections) -> None:
        for collection in collections:
            for queue in list(self._subscribers.get(collection, ())):
                try:
                    queue.put_nowait(collection)
                except asyncio.QueueFull:
                    # A snapshot is already pending for this subscriber
                    pass

    def _after_write(self, collection: str) -> None:
        tx = self._tx.get()
        if tx is not None:
            tx.touched.add(collection)
        else:
            self._publish([collection])


class MemoryStore(RecordStore):
    """In-process store used for tests and the local-only mode.

    Writes made inside a transaction are buffered and applied in one step at
    commit, so concurrent readers never see a half-applied change.
    """
    name = "memory"

    def __init__(self):
        super().__init__()
        self._collections: Dict[str, Dict[str, dict]] = {}

    def _current(self, collection: str, record_id: str) -> Optional[dict]:
        tx = self._tx.get()
        if tx is not None and (collection, record_id) in tx.handle:
            value = tx.handle[(collection, record_id)]
            return None if value is _DELETED else value
        return self._collections.get(collection, {}).get(record_id)

    async def read_record(self, collection, record_id):
        record = self._current(collection, str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def write_record(self, collection, record_id, record):
        record_id = str(record_id)
        previous = self._current(collection, record_id)
        stamped = copy.deepcopy(record)
        stamped["version"] = (previous.get("version", 0) if previous else 0) + 1
        tx = self._tx.get()
        if tx is not None:
            tx.handle[(collection, record_id)] = stamped
        else:
            self._collections.setdefault(collection, {})[record_id] = stamped
        self._after_write(collection)
        return {"id": record_id, "version": stamped["version"]}

    async def delete_record(self, collection, record_id):
        record_id = str(record_id)
        if self._current(collection, record_id) is None:
            return False
        tx = self._tx.get()
        if tx is not None:
            tx.handle[(collection, record_id)] = _DELETED
        else:
            self._collections.get(collection, {}).pop(record_id, None)
        self._after_write(collection)
        return True

    async def list_records(self, collection, filters=None):
        merged = dict(self._collections.get(collection, {}))
        tx = self._tx.get()
        if tx is not None:
            for (name, record_id), value in tx.handle.items():
                if name != collection:
                    continue
                if value is _DELETED:
                    merged.pop(record_id, None)
                else:
                    merged[record_id] = value
        return [copy.deepcopy(r) for r in merged.values() if matches(r, filters)]

    @asynccontextmanager
    async def transaction(self):
        if self._tx.get() is not None:
            yield
            return
        async with self._lock:
            tx = _Transaction(handle={})
            token = self._tx.set(tx)
            try:
                yield
            finally:
                self._tx.reset(token)
            for (collection, record_id), value in tx.handle.items():
                records = self._collections.setdefault(collection, {})
                if value is _DELETED:
                    records.pop(record_id, None)
                else:
                    records[record_id] = value
        self._publish(tx.touched)


class PostgresStore(RecordStore):
    """Record store backed by the asyncpg pool and the ``records`` JSONB table.

    When the database cannot be reached the store flips ``available`` off,
    keeps serving reads from the last snapshot it fetched for a collection and
    refuses writes with ``BackendUnavailable``.
    """
    name = "postgres"

    def __init__(self):
        super().__init__()
        self._snapshots: Dict[str, Dict[str, dict]] = {}

    @asynccontextmanager
    async def _connection(self):
        tx = self._tx.get()
        if tx is not None:
            yield tx.handle
            return
        try:
            async with get_db_connection() as conn:
                yield conn
        except CONNECTION_ERRORS as e:
            if self.available:
                logger.error(f"Record store unreachable, switching to read-only mode: {e}")
            self.available = False
            raise BackendUnavailable("The record store is unreachable. Changes are disabled until it is back.") from e
        if not self.available:
            logger.info("Record store reachable again, leaving read-only mode.")
        self.available = True

    @staticmethod
    def _decode(row) -> dict:
        data = row["data"]
        record = json.loads(data) if isinstance(data, str) else dict(data)
        record["version"] = row["version"]
        return record

    def _cached(self, collection: str) -> Optional[Dict[str, dict]]:
        cached = self._snapshots.get(collection)
        if cached is not None:
            logger.warning(f"Serving cached '{collection}' snapshot while the record store is unavailable")
        return cached

    async def read_record(self, collection, record_id):
        record_id = str(record_id)
        try:
            async with self._connection() as conn:
                row = await conn.fetchrow(
                    "SELECT data, version FROM records WHERE collection = $1 AND id = $2",
                    collection, record_id
                )
        except BackendUnavailable:
            cached = self._cached(collection)
            if cached is None:
                raise
            record = cached.get(record_id)
            return copy.deepcopy(record) if record is not None else None
        return self._decode(row) if row else None

    async def write_record(self, collection, record_id, record):
        record_id = str(record_id)
        data = {k: v for k, v in record.items() if k != "version"}
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO records (collection, id, data, version, created_at, updated_at)
                VALUES ($1, $2, $3::jsonb, 1, NOW(), NOW())
                ON CONFLICT (collection, id) DO UPDATE SET
                    data = EXCLUDED.data,
                    version = records.version + 1,
                    updated_at = NOW()
                RETURNING version
                """,
                collection, record_id, json.dumps(data, default=str)
            )
        self._after_write(collection)
        return {"id": record_id, "version": row["version"]}

    async def delete_record(self, collection, record_id):
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "DELETE FROM records WHERE collection = $1 AND id = $2 RETURNING id",
                collection, str(record_id)
            )
        if row is None:
            return False
        self._after_write(collection)
        return True

    async def list_records(self, collection, filters=None):
        try:
            async with self._connection() as conn:
                if filters:
                    rows = await conn.fetch(
                        """
                        SELECT id, data, version FROM records
                        WHERE collection = $1 AND data @> $2::jsonb
                        ORDER BY created_at, id
                        """,
                        collection, json.dumps(filters, default=str)
                    )
                else:
                    rows = await conn.fetch(
                        "SELECT id, data, version FROM records WHERE collection = $1 ORDER BY created_at, id",
                        collection
                    )
        except BackendUnavailable:
            cached = self._cached(collection)
            if cached is None:
                raise
            return [copy.deepcopy(r) for r in cached.values() if matches(r, filters)]
        records = [self._decode(r) for r in rows]
        if not filters and self._tx.get() is None:
            self._snapshots[collection] = {row["id"]: copy.deepcopy(r) for row, r in zip(rows, records)}
        return records

    @asynccontextmanager
    async def transaction(self):
        if self._tx.get() is not None:
            yield
            return
        async with self._lock:
            async with self._connection() as conn:
                async with conn.transaction():
                    tx = _Transaction(handle=conn)
                    token = self._tx.set(tx)
                    try:
                        yield
                    finally:
                        self._tx.reset(token)
        self._publish(tx.touched)


async def next_sequence(store: RecordStore, name: str) -> int:
    """Monotonic counter kept as a record; call inside a transaction"""
    counter = await store.read_record("counters", name) or {"value": 0}
    counter["value"] = int(counter.get("value", 0)) + 1
    await store.write_record("counters", name, counter)
    return counter["value"]


# Active store for the running application
_store: Optional[RecordStore] = None


def set_store(store: Optional[RecordStore]) -> None:
    global _store
    _store = store


def get_store() -> RecordStore:
    """FastAPI dependency returning the active record store"""
    if _store is None:
        logger.error("Record store is not initialized. Call set_store() first.")
        raise RuntimeError("Record store is not initialized. Call set_store() first.")
    return _store


def has_store() -> bool:
    return _store is not None
