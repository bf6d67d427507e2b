from datetime import datetime, timedelta
from typing import Dict, Generic, Hashable, Optional, Tuple, TypeVar

from brontie.utils.clock import Clock

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Small time-based cache.

    Expiry is read from the injected clock, never from the system time,
    so tests decide when entries go stale.
    """

    def __init__(self, clock: Clock, ttl_seconds: int):
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self._entries: Dict[Hashable, Tuple[V, datetime]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock.now() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (value, self.clock.now() + self.ttl)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
