"""
Client caches: successful results and recent failures.

Both are plain dicts keyed by asset key, so lookups stay O(1). Insertion order
doubles as age order; an overwritten key is moved to the end.
"""

from __future__ import annotations

import json
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 50
DEFAULT_MAX_PAYLOAD = 500_000
EVICT_FRACTION = 0.2

FAILURE_TTL = 5 * 60
FAILURE_RETENTION = 10 * 60


@dataclass
class CacheEntry:
    key: str
    payload: Any
    stored_at: float


def payload_size(payload: Any) -> int:
    if isinstance(payload, (str, bytes, bytearray)):
        return len(payload)
    return len(json.dumps(payload, default=str))


class ResultCache:
    """
    TTL cache for fetched results.

    Payloads over ``max_payload_size`` are refused. When full, the oldest
    ``ceil(20%)`` entries are evicted before the new one is stored.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_payload_size: int | None = DEFAULT_MAX_PAYLOAD,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl = ttl
        self.max_entries = max_entries
        self.max_payload_size = max_payload_size
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.stored_at > self.ttl:
            del self._entries[key]
            return None
        return entry.payload

    def set(self, key: str, payload: Any) -> bool:
        if self.max_payload_size is not None and payload_size(payload) > self.max_payload_size:
            return False

        self._entries.pop(key, None)
        if len(self._entries) >= self.max_entries:
            self._evict_oldest()
        self._entries[key] = CacheEntry(key=key, payload=payload, stored_at=self.clock())
        return True

    def _evict_oldest(self) -> None:
        count = math.ceil(len(self._entries) * EVICT_FRACTION)
        for key in list(self._entries)[:count]:
            del self._entries[key]

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


@dataclass
class FailureMark:
    key: str
    failed_at: float


class FailureMemo:
    """Remembers keys that failed recently so they are not re-requested."""

    def __init__(
        self,
        ttl: float = FAILURE_TTL,
        retention: float = FAILURE_RETENTION,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.retention = retention
        self.clock = clock
        self._marks: dict[str, FailureMark] = {}

    def mark_failed(self, key: str) -> None:
        now = self.clock()
        self._marks.pop(key, None)
        self._marks[key] = FailureMark(key=key, failed_at=now)
        self._prune(now)

    def _prune(self, now: float) -> None:
        stale = [k for k, mark in self._marks.items() if now - mark.failed_at > self.retention]
        for key in stale:
            del self._marks[key]

    def is_recently_failed(self, key: str) -> bool:
        mark = self._marks.get(key)
        if mark is None:
            return False
        return self.clock() - mark.failed_at < self.ttl

    def forget(self, key: str) -> None:
        self._marks.pop(key, None)

    def __len__(self) -> int:
        return len(self._marks)
