from __future__ import annotations

import hashlib
import json
import threading
import time
from typing import Any, Callable

_DEFAULT_TTL = 300  # 5 minutes


def make_key(parts: dict) -> str:
    normalized = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


class TTLCache:
    """Small time-bounded memo used by candidate sources.

    Instances are injected rather than shared at module level, so each
    source (and each test) owns its own entries and counters. One instance
    may be hit from several threadpool workers at once.
    """

    def __init__(
        self,
        default_ttl: float = _DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: dict, ttl: float | None = None) -> Any | None:
        ttl = self.default_ttl if ttl is None else ttl
        digest = make_key(key)
        with self._lock:
            entry = self._entries.get(digest)
            if entry and self._clock() - entry["created_at"] < ttl:
                self._hits += 1
                return entry["value"]
            if entry:
                self._entries.pop(digest, None)
            self._misses += 1
            return None

    def set(self, key: dict, value: Any) -> None:
        digest = make_key(key)
        with self._lock:
            self._entries[digest] = {"value": value, "created_at": self._clock()}

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
