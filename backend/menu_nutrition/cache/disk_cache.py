"""
Key -> JSON record store with lazy TTL expiry.
One file per key; writers serialize per key; a malformed record is a miss, never an error.
Records carry their full key, so a read only returns the record written under that exact key.
"""
import hashlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from menu_nutrition.models.resolution import CacheEntry, ResolutionResult

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_READABLE_LENGTH = 80
_DIGEST_LENGTH = 16


def sanitize_key(key: str) -> str:
    """Filesystem-safe token: a readable prefix plus a digest of the exact key."""
    key = key or ""
    readable = _UNSAFE.sub("_", key.strip().lower())[:_READABLE_LENGTH] or "_"
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return f"{readable}_{digest}"


class NutritionCache(ABC):
    """Shared by the resolver (results) and adapters (source payloads such as food lists)."""

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._stats_lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "writes": 0, "expired": 0, "corrupt": 0}

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    @abstractmethod
    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry, expired or not. No stats, no eviction."""

    @abstractmethod
    def _write(self, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def _delete_if_unchanged(self, expected: CacheEntry) -> bool:
        """Remove the record for expected.key only if it still equals expected. Atomic per key."""

    @abstractmethod
    def keys(self) -> list:
        ...

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self.get_entry(key)
        if entry is None:
            self._count("misses")
            return None
        if entry.is_expired(self._clock()):
            # A writer may have replaced the record since it was read; keep the fresh one
            self._delete_if_unchanged(entry)
            self._count("expired")
            self._count("misses")
            return None
        self._count("hits")
        return entry

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._live_entry(key)
        return entry.payload if entry is not None else None

    def set(self, key: str, payload: Dict[str, Any], ttl: Optional[float] = None) -> None:
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=self._clock(),
            ttl_seconds=self.default_ttl if ttl is None else ttl,
        )
        try:
            self._write(entry)
            self._count("writes")
        except OSError as e:
            logger.warning("CACHE write failed key=%s error=%s", key[:60], e)

    def get_result(self, key: str) -> Optional[ResolutionResult]:
        entry = self._live_entry(key)
        if entry is None:
            return None
        try:
            return ResolutionResult.from_dict(entry.payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("CACHE corrupt result key=%s error=%s", key[:60], e)
            self._count("corrupt")
            self._delete_if_unchanged(entry)
            return None

    def set_result(self, key: str, result: ResolutionResult, ttl: Optional[float] = None) -> None:
        self.set(key, result.to_dict(), ttl=ttl)

    def clear_expired(self) -> int:
        """Remove every expired record. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for key in self.keys():
            entry = self.get_entry(key)
            if entry is not None and entry.is_expired(now) and self._delete_if_unchanged(entry):
                removed += 1
        if removed:
            logger.info("CACHE cleared expired=%s", removed)
        return removed

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)

    def statistics(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats["hits"] + stats["misses"]
        stats["entries"] = len(self.keys())
        stats["hit_rate"] = round(stats["hits"] / lookups, 3) if lookups else 0.0
        return stats


class DiskCache(NutritionCache):
    """One `<sanitized key>.json` file per record under `directory`."""

    def __init__(self, directory: Path, default_ttl: float, clock: Callable[[], float] = time.time):
        super().__init__(default_ttl, clock)
        self.directory = Path(directory)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, safe_key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(safe_key)
            if lock is None:
                lock = self._locks[safe_key] = threading.Lock()
            return lock

    def _path(self, safe_key: str) -> Path:
        return self.directory / f"{safe_key}.json"

    @staticmethod
    def _load(path: Path) -> Optional[CacheEntry]:
        """None when the file is gone. Raises on a malformed record."""
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        return CacheEntry.from_dict(data)

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        safe = sanitize_key(key)
        path = self._path(safe)
        try:
            entry = self._load(path)
        except Exception as e:
            logger.warning("CACHE corrupt record path=%s error=%s", path.name, e)
            self._count("corrupt")
            self._remove_if_corrupt(safe)
            return None
        if entry is None:
            return None
        if entry.key != key:
            logger.warning("CACHE key mismatch path=%s stored=%s", path.name, entry.key[:60])
            return None
        return entry

    def _remove_if_corrupt(self, safe: str) -> None:
        path = self._path(safe)
        with self._lock_for(safe):
            try:
                self._load(path)
                return
            except Exception:
                pass
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def _write(self, entry: CacheEntry) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        safe = sanitize_key(entry.key)
        path = self._path(safe)
        with self._lock_for(safe):
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{safe}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(entry.to_dict(), f, indent=2)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    def delete(self, key: str) -> None:
        safe = sanitize_key(key)
        with self._lock_for(safe):
            try:
                self._path(safe).unlink()
            except FileNotFoundError:
                pass

    def _delete_if_unchanged(self, expected: CacheEntry) -> bool:
        safe = sanitize_key(expected.key)
        path = self._path(safe)
        with self._lock_for(safe):
            try:
                current = self._load(path)
            except Exception:
                return False
            if current != expected:
                return False
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

    def keys(self) -> list:
        """Full keys of every readable record."""
        if not self.directory.exists():
            return []
        found = []
        for path in self.directory.glob("*.json"):
            try:
                entry = self._load(path)
            except Exception:
                continue
            if entry is not None:
                found.append(entry.key)
        return sorted(found)

    def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            with self._lock_for(path.stem):
                try:
                    path.unlink()
                except FileNotFoundError:
                    pass


class MemoryCache(NutritionCache):
    """Same contract as DiskCache without touching the filesystem."""

    def __init__(self, default_ttl: float = 24 * 3600, clock: Callable[[], float] = time.time):
        super().__init__(default_ttl, clock)
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def _write(self, entry: CacheEntry) -> None:
        # Round-trip through JSON so callers get the same values DiskCache would return
        stored = CacheEntry.from_dict(json.loads(json.dumps(entry.to_dict())))
        with self._lock:
            self._entries[entry.key] = stored

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _delete_if_unchanged(self, expected: CacheEntry) -> bool:
        with self._lock:
            if self._entries.get(expected.key) != expected:
                return False
            del self._entries[expected.key]
            return True

    def keys(self) -> list:
        with self._lock:
            return sorted(self._entries)
