from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Tuple


class ResponseCache:
    """
    Bounded LRU with per-entry expiry.

    Holds revision-scoped CDN payloads, which never change for a given URL, so
    the TTL only bounds memory held for revisions nobody asks for anymore.
    """

    def __init__(self, max_size: int = 1000, ttl_s: float = 3600.0, clock: Callable[[], float] = time.monotonic) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        # Membership is a read-only check: no counters, no LRU reordering.
        ent = self._entries.get(key)
        return ent is not None and not self._expired(ent[0])

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_s

    def get(self, key: str, default: Any = None) -> Any:
        ent = self._entries.get(key)
        if ent is None:
            self._misses += 1
            return default
        stored_at, value = ent
        if self._expired(stored_at):
            del self._entries[key]
            self._misses += 1
            return default
        self._entries.move_to_end(key)
        self._hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
        }
