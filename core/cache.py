"""
Shared TTL cache for fetched market data and text artifacts.

Entries expire ``ttl_seconds`` after they were written and are dropped on
read. Concurrent writers to the same key are last-write-wins. When a cache
directory is configured, JSON-serializable values are mirrored to
``<dir>/<key>.json`` so a later process can reuse them until expiry.
"""
from __future__ import annotations

import json
import logging
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        cache_dir: Optional[str | Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.expires_at > now:
                    self.hits += 1
                    return entry.value
                del self._entries[key]

            value = self._read_disk(key, now)
            if value is None:
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        expires_at = self._clock() + ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=expires_at)
            self._write_disk(key, value, expires_at)

    def get_or_set(self, key: str, factory: Callable[[], Any]) -> Any:
        """Return the cached value or compute, store and return it."""
        value = self.get(key)
        if value is None:
            value = factory()
            if value is not None:
                self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            path = self._path_for(key)
            if path is not None and path.exists():
                path.unlink()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            if self.cache_dir is not None and self.cache_dir.exists():
                for path in self.cache_dir.glob("*.json"):
                    path.unlink()

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for e in self._entries.values() if e.expires_at > now)

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl_seconds,
            "cache_dir": str(self.cache_dir) if self.cache_dir else None,
        }

    # ------------------------------------------------------------------
    # Disk mirror
    # ------------------------------------------------------------------

    def _path_for(self, key: str) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        return self.cache_dir / f"{_SAFE_KEY.sub('_', key)}.json"

    def _read_disk(self, key: str, now: float) -> Optional[Any]:
        path = self._path_for(key)
        if path is None or not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Unreadable cache file {path}: {e}")
            return None
        if payload.get("expires_at", 0) <= now:
            path.unlink(missing_ok=True)
            return None
        self._entries[key] = CacheEntry(value=payload["value"], expires_at=payload["expires_at"])
        return payload["value"]

    def _write_disk(self, key: str, value: Any, expires_at: float) -> None:
        path = self._path_for(key)
        if path is None:
            return
        try:
            text = json.dumps({"key": key, "expires_at": expires_at, "value": value})
        except TypeError:
            # Frames and other rich objects stay memory-only
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


_shared_cache: Optional[TTLCache] = None


def get_shared_cache() -> TTLCache:
    """Process-wide cache built from the ``cache`` settings section."""
    global _shared_cache
    if _shared_cache is None:
        from config.settings_loader import get_cache_config

        cfg = get_cache_config()
        _shared_cache = TTLCache(ttl_seconds=cfg["ttl_seconds"], cache_dir=cfg["dir"])
    return _shared_cache


def reset_shared_cache() -> None:
    global _shared_cache
    _shared_cache = None
