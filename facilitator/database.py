"""JSON document store on SQLite with an in-process change feed.

Each collection is a table of ``(id, data)`` rows where ``data`` is a JSON
document.  Every write to a collection re-runs the queries subscribed to
that collection and pushes the fresh snapshot to their ``on_change``
callbacks as independent asyncio tasks, so deliveries can overlap.
"""

import asyncio
import inspect
import json
import logging
import re
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import aiosqlite

from facilitator.errors import DocumentNotFound, TransportError

logger = logging.getLogger(__name__)

COLLECTIONS = ("sessions", "notes", "responses")

_DDL = [
    f"""
CREATE TABLE IF NOT EXISTS {name} (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL
)
"""
    for name in COLLECTIONS
]

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Placeholder for a top-level field; replaced with the store clock on write.
SERVER_TIMESTAMP = _ServerTimestamp()

OnChange = Callable[[Any], Awaitable[None] | None]
OnError = Callable[[Exception], None]


@dataclass
class Query:
    collection: str
    where: dict[str, Any] = field(default_factory=dict)
    order_by: str | None = "created_at"
    descending: bool = False


class Subscription:
    """Cancel handle returned by the subscribe methods."""

    def __init__(self, on_cancel: Callable[["Subscription"], None]) -> None:
        self._on_cancel = on_cancel
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._on_cancel(self)


@dataclass(eq=False)
class _Listener:
    collection: str
    fetch: Callable[[], Awaitable[Any]]
    on_change: OnChange
    on_error: OnError | None
    subscription: Subscription | None = None


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")


def _check_field(name: str) -> None:
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")


class DocumentStore:
    def __init__(self, path: str) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None
        self._listeners: dict[str, list[_Listener]] = {name: [] for name in COLLECTIONS}
        self._tasks: set[asyncio.Task] = set()
        self._last_timestamp = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        """Open the connection and create all tables."""
        self._conn = await aiosqlite.connect(self.path)
        await self._conn.execute("PRAGMA busy_timeout = 5000")
        for stmt in _DDL:
            await self._conn.execute(stmt)
        await self._conn.commit()

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        for listeners in self._listeners.values():
            listeners.clear()
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise TransportError("Document store is not connected")
        return self._conn

    async def _execute(self, sql: str, params=()) -> aiosqlite.Cursor:
        try:
            return await self.conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise TransportError(f"Document store error: {exc}") from exc

    async def _commit(self) -> None:
        try:
            await self.conn.commit()
        except sqlite3.Error as exc:
            raise TransportError(f"Document store error: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _next_timestamp(self) -> float:
        now = time.time()
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1e-6
        self._last_timestamp = now
        return now

    def _resolve_timestamps(self, data: dict) -> dict:
        """Replace every ``SERVER_TIMESTAMP``, nested maps included, with one stamp."""
        stamp: float | None = None

        def resolve(value: Any) -> Any:
            nonlocal stamp
            if value is SERVER_TIMESTAMP:
                if stamp is None:
                    stamp = self._next_timestamp()
                return stamp
            if isinstance(value, dict):
                return {key: resolve(item) for key, item in value.items()}
            return value

        return resolve(data)

    async def create(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        """Insert a new document and return its id."""
        _check_collection(collection)
        doc_id = doc_id or uuid.uuid4().hex
        doc = self._resolve_timestamps({**data, "id": doc_id})
        await self._execute(
            f"INSERT INTO {collection} (id, data) VALUES (?, ?)",
            (doc_id, json.dumps(doc)),
        )
        await self._commit()
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or fully replace a document."""
        _check_collection(collection)
        doc = self._resolve_timestamps({**data, "id": doc_id})
        await self._execute(
            f"INSERT OR REPLACE INTO {collection} (id, data) VALUES (?, ?)",
            (doc_id, json.dumps(doc)),
        )
        await self._commit()
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, fields: dict) -> None:
        """Merge *fields* into an existing document.

        The merge runs inside SQLite (``json_patch``) so two overlapping
        updates of different fields both survive.
        """
        _check_collection(collection)
        for name in fields:
            _check_field(name)
        patch = self._resolve_timestamps(fields)
        patch.pop("id", None)
        cursor = await self._execute(
            f"UPDATE {collection} SET data = json_patch(data, ?) WHERE id = ?",
            (json.dumps(patch), doc_id),
        )
        await self._commit()
        if cursor.rowcount == 0:
            raise DocumentNotFound(collection, doc_id)
        self._notify(collection)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> dict | None:
        _check_collection(collection)
        cursor = await self._execute(
            f"SELECT data FROM {collection} WHERE id = ?", (doc_id,)
        )
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    async def query(self, query: Query) -> list[dict]:
        """Equality filters on top-level fields, ordered by one field.

        Documents missing the order field sort first when ascending.
        """
        _check_collection(query.collection)
        clauses: list[str] = []
        params: list[Any] = []
        for name, value in query.where.items():
            _check_field(name)
            clauses.append(f"json_extract(data, '$.{name}') = ?")
            params.append(value)
        sql = f"SELECT data FROM {query.collection}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if query.order_by:
            _check_field(query.order_by)
            direction = "DESC" if query.descending else "ASC"
            sql += f" ORDER BY json_extract(data, '$.{query.order_by}') {direction}, rowid {direction}"
        cursor = await self._execute(sql, params)
        return [json.loads(row[0]) for row in await cursor.fetchall()]

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------
    def subscribe(
        self,
        query: Query,
        on_change: OnChange,
        on_error: OnError | None = None,
    ) -> Subscription:
        """Push the result list of *query* now and after every write to its collection."""
        _check_collection(query.collection)
        return self._add_listener(
            _Listener(query.collection, lambda: self.query(query), on_change, on_error)
        )

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        on_change: OnChange,
        on_error: OnError | None = None,
    ) -> Subscription:
        """Push the document (or ``None`` when absent) now and after every write."""
        _check_collection(collection)
        return self._add_listener(
            _Listener(collection, lambda: self.get(collection, doc_id), on_change, on_error)
        )

    def _add_listener(self, listener: _Listener) -> Subscription:
        def remove(_sub: Subscription) -> None:
            listeners = self._listeners[listener.collection]
            if listener in listeners:
                listeners.remove(listener)

        listener.subscription = Subscription(remove)
        self._listeners[listener.collection].append(listener)
        self._spawn(self._deliver(listener))
        return listener.subscription

    def _notify(self, collection: str) -> None:
        for listener in list(self._listeners[collection]):
            self._spawn(self._deliver(listener))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, listener: _Listener) -> None:
        try:
            snapshot = await listener.fetch()
            if listener.subscription is not None and listener.subscription.cancelled:
                return
            result = listener.on_change(snapshot)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if listener.on_error is None:
                logger.exception("Unhandled change feed error on %s", listener.collection)
            else:
                listener.on_error(exc)

    async def wait_idle(self) -> None:
        """Wait until no change deliveries are in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
