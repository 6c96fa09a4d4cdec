"""
In-memory cache with per-entry time-to-live.

Expiry is lazy: an entry is only checked (and dropped) when it is read.
The cache is passed to whoever needs it; there is no module-level instance.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

from kosengrade.config import CACHE_KEY_PREFIX


def make_cache_key(institution_id: str, department: str | int, grade: int, year: int) -> str:
    return f"{CACHE_KEY_PREFIX}_{institution_id}_{department}_{grade}_{year}"


class TTLCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self, prefix: Optional[str] = None) -> None:
        if prefix is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
