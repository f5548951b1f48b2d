# src/fetch/cache.py
from __future__ import annotations

import json
import logging
import math
import sqlite3
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

from redis import Redis

from src import config

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# Configuration (env-overridable via src.config)
# --------------------------------------------------------------------------------------

CACHE_BACKEND = config.app_config.cache.backend
CACHE_DB = config.app_config.cache.db_path
CACHE_REDIS_URL = config.app_config.cache.redis_url

# --------------------------------------------------------------------------------------
# Model
# --------------------------------------------------------------------------------------


class CacheStore(Protocol):
    """Key/value store holding JSON-serialisable values with a TTL."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float | None  # epoch seconds; None = no expiry

    @property
    def fresh(self) -> bool:
        if self.expires_at is None:
            return True
        return self.expires_at > _now()


# --------------------------------------------------------------------------------------
# Utilities
# --------------------------------------------------------------------------------------


def _now() -> float:
    # Use wall clock (tests may monkeypatch time.time())
    return time.time()


def _expiry(ttl_seconds: float, now: float | None = None) -> float | None:
    if ttl_seconds is None or ttl_seconds <= 0:
        return None
    return (now if now is not None else _now()) + float(ttl_seconds)


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _loads(raw: str | bytes | None) -> Any | None:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)


# --------------------------------------------------------------------------------------
# In-process store
# --------------------------------------------------------------------------------------


class MemoryCacheStore:
    """Dict-backed store with absolute expiry; safe to call from worker threads."""

    def __init__(self) -> None:
        self._data: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if not entry.fresh:
                del self._data[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        # Round-trip through JSON so callers can't mutate what we hold.
        stored = _loads(_dumps(value))
        with self._lock:
            self._data[key] = CacheEntry(key=key, value=stored, expires_at=_expiry(ttl_seconds))

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def prune(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            stale = [k for k, e in self._data.items() if not e.fresh]
            for k in stale:
                del self._data[k]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


# --------------------------------------------------------------------------------------
# SQLite store
# --------------------------------------------------------------------------------------


class SqliteCacheStore:
    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or CACHE_DB
        self._cx = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        self._lock = threading.Lock()
        if self.db_path != ":memory:":
            self._cx.execute("PRAGMA journal_mode=WAL;")
        self._cx.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    # ---- schema ----------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        self._cx.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_cache (
              key        TEXT PRIMARY KEY,
              value      TEXT NOT NULL,
              expires_at REAL
            )
            """
        )
        self._cx.commit()

    # ---- public API ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        with self._lock:
            row = self._cx.execute(
                "SELECT value, expires_at FROM kv_cache WHERE key=?", (key,)
            ).fetchone()
            if not row:
                return None
            expires_at = None if row[1] is None else float(row[1])
            if expires_at is not None and expires_at <= _now():
                self._cx.execute("DELETE FROM kv_cache WHERE key=?", (key,))
                self._cx.commit()
                return None
        return _loads(row[0])

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = _expiry(ttl_seconds)
        with self._lock:
            self._cx.execute(
                """
                INSERT INTO kv_cache (key, value, expires_at)
                VALUES (?,?,?)
                ON CONFLICT (key) DO UPDATE SET
                    value=excluded.value,
                    expires_at=excluded.expires_at
                """,
                (key, _dumps(value), expires_at),
            )
            self._cx.commit()

    def delete(self, key: str) -> None:
        with self._lock:
            self._cx.execute("DELETE FROM kv_cache WHERE key=?", (key,))
            self._cx.commit()

    def prune(self) -> int:
        with self._lock:
            cur = self._cx.execute(
                "DELETE FROM kv_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (_now(),),
            )
            self._cx.commit()
            return int(cur.rowcount or 0)

    def close(self) -> None:
        try:
            self._cx.close()
        except sqlite3.Error:
            pass


# --------------------------------------------------------------------------------------
# Redis store
# --------------------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_redis() -> Redis:
    return Redis.from_url(CACHE_REDIS_URL, decode_responses=False)


class RedisCacheStore:
    """
    JSON values in Redis. Positive TTLs use SETEX so expiry is enforced by Redis
    itself; ttl <= 0 stores without expiry.
    """

    def __init__(self, client: Redis | None = None):
        self._redis = client if client is not None else get_redis()

    def get(self, key: str) -> Any | None:
        return _loads(self._redis.get(key))

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        payload = _dumps(value)
        if ttl_seconds and ttl_seconds > 0:
            # Redis TTLs are whole seconds; round up so short TTLs still expire.
            self._redis.setex(key, max(1, math.ceil(ttl_seconds)), payload)
        else:
            self._redis.set(key, payload)

    def delete(self, key: str) -> None:
        self._redis.delete(key)


# --------------------------------------------------------------------------------------
# Module-level convenience (optional singleton)
# --------------------------------------------------------------------------------------

_default_store: CacheStore | None = None


def default() -> CacheStore:
    global _default_store
    if _default_store is None:
        if CACHE_BACKEND == "redis":
            _default_store = RedisCacheStore()
        elif CACHE_BACKEND == "sqlite":
            _default_store = SqliteCacheStore()
        else:
            _default_store = MemoryCacheStore()
        log.info("cache store: %s", type(_default_store).__name__)
    return _default_store


def set_default(store: CacheStore | None) -> None:
    global _default_store
    _default_store = store


__all__ = [
    "CacheStore",
    "CacheEntry",
    "MemoryCacheStore",
    "SqliteCacheStore",
    "RedisCacheStore",
    "get_redis",
    "default",
    "set_default",
]
