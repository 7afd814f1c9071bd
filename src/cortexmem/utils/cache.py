import threading
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

from .vectors import now

V = TypeVar("V")

class TTLCache(Generic[V]):
    """Small result cache: entries expire ttl_ms after being written, least recently used evicted past max_entries."""

    def __init__(self, ttl_ms: int = 60000, max_entries: int = 256, clock: Callable[[], int] = now):
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self.clock = clock
        self._d: "OrderedDict[Hashable, dict]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._d.get(key)
            if entry is None: return None
            if self.clock() - entry["t"] >= self.ttl_ms:
                del self._d[key]
                return None
            self._d.move_to_end(key)
            return entry["r"]

    def set(self, key: Hashable, val: V):
        with self._lock:
            self._d[key] = {"r": val, "t": self.clock()}
            self._d.move_to_end(key)
            while len(self._d) > self.max_entries:
                self._d.popitem(last=False)

    def clear(self):
        with self._lock:
            self._d.clear()

    def __len__(self) -> int:
        return len(self._d)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None
