"""
Async Document Store
JSON document collections on top of SQLite (aiosqlite):
- One `documents` table, partitioned by collection name
- Optional natural key per document (used for upserts)
- Per-collection replace-all inside a single transaction
- Health check and per-operation statistics
"""
import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite
import sqlite3

from core.exceptions import DatabaseError

logger = logging.getLogger(__name__)

CONFIG_COLLECTION = "sheets_configs"

SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    doc_key TEXT,
    body TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection);
CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_key
    ON documents (collection, doc_key) WHERE doc_key IS NOT NULL;
"""


@dataclass
class StoreStats:
    """Document store statistics"""
    total_operations: int = 0
    total_time_ms: float = 0.0
    errors: int = 0
    last_health_check: Optional[datetime] = None
    is_healthy: bool = False

    @property
    def avg_time_ms(self) -> float:
        return self.total_time_ms / self.total_operations if self.total_operations else 0.0


def _now() -> str:
    return datetime.now().isoformat()


class Collection:
    """Handle on one named collection of the store"""

    def __init__(self, store: "DocumentStore", name: str):
        self.store = store
        self.name = name

    async def find_all(self) -> List[Dict[str, Any]]:
        rows = await self.store.fetch_all(
            "SELECT body FROM documents WHERE collection = ? ORDER BY id",
            (self.name,),
        )
        return [json.loads(row["body"]) for row in rows]

    async def count(self) -> int:
        row = await self.store.fetch_one(
            "SELECT COUNT(*) AS n FROM documents WHERE collection = ?", (self.name,)
        )
        return int(row["n"]) if row else 0

    async def delete_all(self) -> int:
        async with self.store.transaction() as conn:
            return await self.store._delete_collection(conn, self.name)

    async def insert_many(self, documents: Sequence[Dict[str, Any]]) -> int:
        if not documents:
            return 0
        async with self.store.transaction() as conn:
            return await self.store._insert_documents(conn, self.name, documents)

    async def replace_all(self, documents: Sequence[Dict[str, Any]]) -> int:
        """Delete every document of the collection, then insert ``documents``"""
        async with self.store.transaction() as conn:
            deleted = await self.store._delete_collection(conn, self.name)
            inserted = await self.store._insert_documents(conn, self.name, documents)
        logger.debug(f"Replaced {deleted} -> {inserted} documents in {self.name}")
        return inserted


class DocumentStore:
    """
    Async document store with a single serialised SQLite connection.

    Writes go through `transaction()`, which holds an asyncio lock so that
    concurrent coroutines never interleave BEGIN/COMMIT on the shared
    connection.
    """

    def __init__(self, database_path: str, timeout: float = 30.0):
        self.database_path = database_path
        self.timeout = timeout
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()
        self.stats = StoreStats()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            conn = await aiosqlite.connect(
                self.database_path,
                timeout=self.timeout,
                isolation_level=None,  # explicit BEGIN/COMMIT in transaction()
            )
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            self.stats.errors += 1
            raise DatabaseError(str(e), operation="connect") from e

        self._conn = conn
        self.stats.is_healthy = True
        logger.info(f"✅ Document store ready at {self.database_path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        self.stats.is_healthy = False
        logger.info("🔌 Document store closed")

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise DatabaseError("store is not connected", operation="acquire")
        return self._conn

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _track(self, started: float) -> None:
        self.stats.total_operations += 1
        self.stats.total_time_ms += (time.perf_counter() - started) * 1000

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = self._require()
        started = time.perf_counter()
        try:
            async with conn.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [dict(row) for row in rows]
        except sqlite3.Error as e:
            self.stats.errors += 1
            raise DatabaseError(str(e), operation="fetch") from e
        finally:
            self._track(started)

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    @asynccontextmanager
    async def transaction(self):
        """Run statements inside BEGIN/COMMIT, rolling back on failure"""
        conn = self._require()
        async with self._write_lock:
            started = time.perf_counter()
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                self.stats.errors += 1
                self._track(started)
                raise DatabaseError(str(e), operation="transaction") from e
            try:
                yield conn
                await conn.execute("COMMIT")
            except sqlite3.Error as e:
                await conn.execute("ROLLBACK")
                self.stats.errors += 1
                raise DatabaseError(str(e), operation="transaction") from e
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            finally:
                self._track(started)

    async def _delete_collection(self, conn: aiosqlite.Connection, name: str) -> int:
        cursor = await conn.execute("DELETE FROM documents WHERE collection = ?", (name,))
        return cursor.rowcount or 0

    async def _insert_documents(
        self,
        conn: aiosqlite.Connection,
        name: str,
        documents: Sequence[Dict[str, Any]],
        key_field: Optional[str] = None,
    ) -> int:
        if not documents:
            return 0
        now = _now()
        await conn.executemany(
            "INSERT INTO documents (collection, doc_key, body, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                (name, doc.get(key_field) if key_field else None, json.dumps(doc, default=str), now, now)
                for doc in documents
            ],
        )
        return len(documents)

    # ------------------------------------------------------------------
    # Keyed documents (source configurations)
    # ------------------------------------------------------------------

    async def get_document(self, name: str, key: str) -> Optional[Dict[str, Any]]:
        row = await self.fetch_one(
            "SELECT body FROM documents WHERE collection = ? AND doc_key = ?", (name, key)
        )
        return json.loads(row["body"]) if row else None

    async def upsert_document(self, name: str, key: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert or replace the document stored under ``key``.

        ``createdAt`` is kept from the first insert; ``updatedAt`` is refreshed.
        """
        now = _now()
        async with self.transaction() as conn:
            async with conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_key = ?", (name, key)
            ) as cursor:
                row = await cursor.fetchone()

            existing = json.loads(row["body"]) if row else None
            merged = dict(document)
            merged["createdAt"] = (existing or {}).get("createdAt") or now
            merged["updatedAt"] = now
            body = json.dumps(merged, default=str)

            if existing is None:
                await conn.execute(
                    "INSERT INTO documents (collection, doc_key, body, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (name, key, body, now, now),
                )
            else:
                await conn.execute(
                    "UPDATE documents SET body = ?, updated_at = ? WHERE collection = ? AND doc_key = ?",
                    (body, now, name, key),
                )
        return merged

    async def update_fields(self, name: str, key: str, fields: Dict[str, Any]) -> bool:
        """Merge ``fields`` into an existing keyed document; False if it is gone"""
        async with self.transaction() as conn:
            async with conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_key = ?", (name, key)
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return False
            body = json.loads(row["body"])
            body.update(fields)
            await conn.execute(
                "UPDATE documents SET body = ?, updated_at = ? WHERE collection = ? AND doc_key = ?",
                (json.dumps(body, default=str), _now(), name, key),
            )
        return True

    async def delete_collections(self, names: Sequence[str]) -> Dict[str, int]:
        """Delete several collections in one transaction; returns per-collection counts"""
        counts: Dict[str, int] = {}
        async with self.transaction() as conn:
            for name in names:
                counts[name] = await self._delete_collection(conn, name)
        return counts

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        self.stats.last_health_check = datetime.now()
        if self._conn is None:
            self.stats.is_healthy = False
            return {"status": "disconnected", "path": self.database_path}
        try:
            started = time.perf_counter()
            await self.fetch_one("SELECT 1 AS ok")
            latency = (time.perf_counter() - started) * 1000
        except DatabaseError as e:
            self.stats.is_healthy = False
            return {"status": "unhealthy", "path": self.database_path, "error": e.message}

        self.stats.is_healthy = True
        return {
            "status": "healthy",
            "path": self.database_path,
            "latency_ms": round(latency, 2),
            "operations": self.stats.total_operations,
            "avg_time_ms": round(self.stats.avg_time_ms, 2),
            "errors": self.stats.errors,
        }

