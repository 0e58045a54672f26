"""
TTL cache for decrypted collections and derived aggregates.

One lock guards the entry map, so a get/set racing the background sweep
never sees a half-written entry. Expired entries are never returned.
"""

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..util.logging import StructuredLogger

DEFAULT_TTL_SEC = 300.0


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float
    hits: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass
class CacheStats:
    total_items: int
    total_hits: int
    total_misses: int
    hit_rate: float
    memory_usage: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_items": self.total_items,
            "total_hits": self.total_hits,
            "total_misses": self.total_misses,
            "hit_rate": self.hit_rate,
            "memory_usage": self.memory_usage,
        }


def _approx_size(key: str, value: Any) -> int:
    """Rough byte footprint: UTF-16 string sizes plus fixed metadata overhead."""
    try:
        body = json.dumps(value, default=str)
    except (TypeError, ValueError):
        body = repr(value)
    return len(key) * 2 + len(body) * 2 + 32


class TTLCache:
    """Thread-safe keyed store with per-entry time-to-live and hit counters."""

    def __init__(self, default_ttl: float = DEFAULT_TTL_SEC,
                 clock: Callable[[], float] = time.monotonic,
                 logger: Optional[StructuredLogger] = None):
        self.default_ttl = default_ttl
        self._clock = clock
        self._logger = logger
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def _log(self, event: str, key: str, **details):
        if self._logger:
            self._logger.log_cache_event(event, key, details or None)

    def set(self, key: str, value: Any, ttl: float = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, created_at=self._clock(), ttl=ttl)
        self._log("set", key, ttl=ttl)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss or an expired entry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                event = "miss"
            elif entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                event = "expired"
            else:
                entry.hits += 1
                self._hits += 1
                self._log("hit", key, hits=entry.hits)
                return entry.value
        self._log(event, key)
        return None

    def delete(self, key: str) -> bool:
        with self._lock:
            deleted = self._entries.pop(key, None) is not None
        if deleted:
            self._log("delete", key)
        return deleted

    def clear(self) -> None:
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        self._log("clear", "*")

    def cleanup(self) -> int:
        """Evict expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            self._log("cleanup", "*", cleaned=len(expired))
        return len(expired)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> CacheStats:
        with self._lock:
            total_requests = self._hits + self._misses
            memory = sum(_approx_size(k, e.value) for k, e in self._entries.items())
            return CacheStats(
                total_items=len(self._entries),
                total_hits=self._hits,
                total_misses=self._misses,
                hit_rate=self._hits / total_requests if total_requests > 0 else 0.0,
                memory_usage=memory,
            )

    def get_hot_data(self, limit: int = 10) -> List[Tuple[str, int]]:
        """Most-hit keys first."""
        with self._lock:
            ranked = sorted(((k, e.hits) for k, e in self._entries.items()),
                            key=lambda item: item[1], reverse=True)
        return ranked[:limit]

    # Background sweep

    def start_sweeper(self, interval_sec: float = 60.0) -> None:
        """Run cleanup() every interval_sec on a daemon thread."""
        if interval_sec <= 0:
            raise ValueError(f"Sweep interval must be > 0: {interval_sec}")
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                raise RuntimeError("Cache sweeper already running")
            self._stop_event = threading.Event()
            self._sweeper = threading.Thread(
                target=self._sweep_loop, args=(interval_sec, self._stop_event),
                name="recordvault-cache-sweeper", daemon=True,
            )
            self._sweeper.start()

    def _sweep_loop(self, interval_sec: float, stop_event: threading.Event) -> None:
        while not stop_event.wait(interval_sec):
            self.cleanup()

    def stop_sweeper(self, timeout: float = 5.0) -> None:
        with self._lock:
            sweeper, stop_event = self._sweeper, self._stop_event
            self._sweeper = None
            self._stop_event = None
        if stop_event is not None:
            stop_event.set()
        if sweeper is not None:
            sweeper.join(timeout)

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()
