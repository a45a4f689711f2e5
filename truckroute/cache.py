"""Small in-memory cache with a time-to-live, injected into the lookup clients."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TTLCache:
    """Mapping whose entries expire ``ttl_s`` seconds after they were stored.

    Keys are namespaced so one instance can be shared by several
    clients without collisions, e.g. ``cache.get("streets", "kanjiža")``.
    """

    def __init__(self, ttl_s: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: Dict[Tuple[str, Hashable], Tuple[float, Any]] = {}

    def get(self, namespace: str, key: Hashable) -> Optional[Any]:
        entry = self._entries.get((namespace, key))
        if entry is None:
            return None
        cached_at, value = entry
        if self._clock() - cached_at >= self.ttl_s:
            del self._entries[(namespace, key)]
            return None
        return value

    def set(self, namespace: str, key: Hashable, value: Any) -> None:
        now = self._clock()
        self.prune(now)
        self._entries[(namespace, key)] = (now, value)

    def prune(self, now: Optional[float] = None) -> int:
        """Drop every expired entry and return how many were dropped."""
        if now is None:
            now = self._clock()
        expired = [
            key for key, (cached_at, _) in self._entries.items() if now - cached_at >= self.ttl_s
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
