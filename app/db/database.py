"""Storage layer: key/value repositories behind one async interface.

Backend is selected via the STORAGE_BACKEND setting:
  - "memory" → MemoryRepository, a dict per namespace (process lifetime)
  - "sqlite" → SqliteRepository, one key/value table per namespace (aiosqlite)

Values are pydantic models. The memory backend hands out deep copies, so a
change only becomes visible to other requests after ``put``.

Read-modify-write of a single key must hold ``db.locks.hold(key)``; nothing
else coordinates concurrent requests.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Generic, TypeVar

import aiosqlite
from fastapi import Request
from pydantic import BaseModel

from app.config import settings
from app.models.analytics import EventLog, UserAnalyticsState
from app.models.progress import UserProgress
from app.models.session import TestSession
from app.models.subscription import Subscription, SubscriptionPointer

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_NAMESPACE_RE = re.compile(r"^[a-z_]+$")


class Repository(Generic[T]):
    """get/put/delete by key, plus a full scan."""

    async def get(self, key: str) -> T | None:
        raise NotImplementedError

    async def put(self, key: str, value: T) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def values(self) -> list[T]:
        raise NotImplementedError


class MemoryRepository(Repository[T]):
    def __init__(self):
        self._items: dict[str, T] = {}

    async def get(self, key: str) -> T | None:
        value = self._items.get(key)
        return value.model_copy(deep=True) if value is not None else None

    async def put(self, key: str, value: T) -> None:
        self._items[key] = value.model_copy(deep=True)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def values(self) -> list[T]:
        return [v.model_copy(deep=True) for v in self._items.values()]


class SqliteRepository(Repository[T]):
    """One ``kv_<namespace>`` table holding JSON-serialized models."""

    def __init__(self, conn: aiosqlite.Connection, namespace: str, model: type[T]):
        if not _NAMESPACE_RE.match(namespace):
            raise ValueError(f"Invalid namespace: {namespace!r}")
        self._conn = conn
        self._table = f"kv_{namespace}"
        self._model = model

    async def create_table(self) -> None:
        await self._conn.execute(
            f"CREATE TABLE IF NOT EXISTS {self._table} (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        await self._conn.commit()

    async def get(self, key: str) -> T | None:
        cursor = await self._conn.execute(f"SELECT value FROM {self._table} WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if not row:
            return None
        return self._model.model_validate_json(row["value"])

    async def put(self, key: str, value: T) -> None:
        await self._conn.execute(
            f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value.model_dump_json(by_alias=True)),
        )
        await self._conn.commit()

    async def delete(self, key: str) -> None:
        await self._conn.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))
        await self._conn.commit()

    async def values(self) -> list[T]:
        cursor = await self._conn.execute(f"SELECT value FROM {self._table} ORDER BY rowid")
        rows = await cursor.fetchall()
        return [self._model.model_validate_json(row["value"]) for row in rows]


class KeyedLocks:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]


# Namespaces and the model each one stores
NAMESPACES: dict[str, type[BaseModel]] = {
    "sessions": TestSession,
    "progress": UserProgress,
    "events": EventLog,
    "user_analytics": UserAnalyticsState,
    "subscriptions": Subscription,
    "user_subscriptions": SubscriptionPointer,
}


class Database:
    """Named repositories plus the lock registry shared by all services."""

    def __init__(self, repositories: dict[str, Repository], conn: aiosqlite.Connection | None = None):
        self.sessions: Repository[TestSession] = repositories["sessions"]
        self.progress: Repository[UserProgress] = repositories["progress"]
        self.events: Repository[EventLog] = repositories["events"]
        self.user_analytics: Repository[UserAnalyticsState] = repositories["user_analytics"]
        self.subscriptions: Repository[Subscription] = repositories["subscriptions"]
        self.user_subscriptions: Repository[SubscriptionPointer] = repositories["user_subscriptions"]
        self.locks = KeyedLocks()
        self._conn = conn

    @classmethod
    def in_memory(cls) -> "Database":
        return cls({name: MemoryRepository() for name in NAMESPACES})

    @classmethod
    async def sqlite(cls, path: str) -> "Database":
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        repositories = {}
        for name, model in NAMESPACES.items():
            repo = SqliteRepository(conn, name, model)
            await repo.create_table()
            repositories[name] = repo
        return cls(repositories, conn)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


# ── Public API ────────────────────────────────────────────────────────

async def init_db() -> Database:
    if settings.storage_backend == "sqlite":
        # Ensure parent directory exists (for Docker volume mounts)
        db_path = Path(settings.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Using SQLite storage: %s", settings.database_path)
        return await Database.sqlite(settings.database_path)

    logger.info("Using in-memory storage")
    return Database.in_memory()


async def close_db(db: Database) -> None:
    await db.close()


def get_db(request: Request) -> Database:
    """FastAPI dependency returning the storage built at startup."""
    return request.app.state.db
