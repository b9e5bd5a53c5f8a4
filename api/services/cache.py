"""Small in-process TTL cache for collaborator lookups."""

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TTLCache:
    """Key/value cache whose entries expire after ``ttl_seconds``.

    Only an optimization: callers must behave identically on a miss.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
