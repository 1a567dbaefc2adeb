"""
Tiered key-value store backing the events cache.

Tiers are tried in order. Reads return the first tier that holds the key;
writes land in the first available tier only. Values are stored as JSON text
so a read never hands back the object a caller wrote.
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Protocol

from config import get_logger
from exceptions import CacheError

logger = get_logger(__name__).bind(component="cache")


class _NotFound:
    """Sentinel for a missing key (a stored None/0/"" is still a value)"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND: Any = _NotFound()


def _decode(raw: str, tier: str, key: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        logger.warning("undecodable cache value", tier=tier, key=key, error=str(e))
        raise CacheError(f"Stored value is not valid JSON: {e}", tier=tier, key=key) from e


class StorageTier(Protocol):
    name: str

    @property
    def available(self) -> bool: ...

    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...


class MemoryTier:
    """Process-local tier. Lost on restart."""

    name = "memory"

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._data: Dict[str, str] = {}

    @property
    def available(self) -> bool:
        return self._enabled

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return NOT_FOUND
        return _decode(raw, self.name, key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class SQLiteTier:
    """
    Durable tier using a single SQLite table.

    Survives restarts. Opens a short-lived connection per call.
    """

    name = "sqlite"

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ready = False
        try:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
            self._ready = True
        except (OSError, sqlite3.Error) as e:
            logger.warning("sqlite cache tier unavailable", db_path=db_path, error=str(e))

    def _init_db(self):
        """Initialize key-value table"""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

    @property
    def available(self) -> bool:
        return self._ready

    def get(self, key: str) -> Any:
        try:
            with sqlite3.connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT value FROM kv_cache WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError(f"Read failed: {e}", tier=self.name, key=key) from e

        if row is None:
            return NOT_FOUND
        return _decode(row[0], self.name, key)

    def set(self, key: str, value: Any) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_cache (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, json.dumps(value), time.time()),
                )
        except sqlite3.Error as e:
            raise CacheError(f"Write failed: {e}", tier=self.name, key=key) from e

    def delete(self, key: str) -> bool:
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM kv_cache WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise CacheError(f"Delete failed: {e}", tier=self.name, key=key) from e


class KeyValueStore:
    """Ordered list of storage tiers, preferred first"""

    def __init__(self, tiers: List[StorageTier]):
        if not tiers:
            raise ValueError("KeyValueStore needs at least one tier")
        self.tiers = tiers

    def _available(self) -> List[StorageTier]:
        return [tier for tier in self.tiers if tier.available]

    def get(self, key: str) -> Any:
        """Return the value from the first tier holding key, else NOT_FOUND"""
        for tier in self._available():
            value = tier.get(key)
            if value is not NOT_FOUND:
                logger.debug("cache tier hit", tier=tier.name, key=key)
                return value
        return NOT_FOUND

    def set(self, key: str, value: Any) -> None:
        """Write to the first available tier only"""
        tier = self._first_available()
        tier.set(key, value)
        logger.debug("cache tier write", tier=tier.name, key=key)

    def delete(self, key: str) -> bool:
        """Remove key from every available tier. Returns True if any held it."""
        removed = False
        for tier in self._available():
            removed = tier.delete(key) or removed
        return removed

    def _first_available(self) -> StorageTier:
        available = self._available()
        if not available:
            raise CacheError("No cache storage tier available")
        return available[0]

    @classmethod
    def create(cls, db_path: str, ephemeral: bool = True) -> "KeyValueStore":
        """Memory tier first, SQLite second"""
        return cls([MemoryTier(enabled=ephemeral), SQLiteTier(db_path)])


def describe_tiers(store: KeyValueStore) -> List[Dict[str, Any]]:
    """Tier names and availability, for status output"""
    return [
        {"name": tier.name, "available": tier.available}
        for tier in store.tiers
    ]
