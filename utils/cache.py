import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CacheConfig(BaseModel):
    max_age_seconds: float = Field(default=1800, ge=0)  # 0 keeps entries forever
    namespace: str = Field(default="default", min_length=1)


class CacheStats(BaseModel):
    namespace: str
    hits: int
    misses: int
    hit_rate: float
    size: int


class _LoadSlot:
    """Per-key loader lock and the number of callers holding or waiting on it."""

    def __init__(self):
        self.lock = threading.Lock()
        self.waiters = 0


class TTLCache:
    """
    In-memory cache with time-based invalidation keyed by string.

    Each instance owns its entries, so components that need caching are
    handed their own cache instead of sharing module-level state.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: Dict[str, Tuple[float, float, Any]] = {}
        self._lock = threading.Lock()
        self._load_locks: Dict[str, _LoadSlot] = {}
        self._hits = 0
        self._misses = 0

    @property
    def namespace(self) -> str:
        return self.config.namespace

    def _full_key(self, key: str) -> str:
        return f"{self.config.namespace}:{key}"

    def _expired(self, stored_at: float, max_age: float) -> bool:
        if max_age <= 0:
            return False
        return self._clock() - stored_at > max_age

    def get(self, key: str) -> Optional[Any]:
        full_key = self._full_key(key)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, max_age, value = entry
            if self._expired(stored_at, max_age):
                del self._entries[full_key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: str, value: Any, max_age_seconds: Optional[float] = None) -> None:
        max_age = self.config.max_age_seconds if max_age_seconds is None else max_age_seconds
        with self._lock:
            self._entries[self._full_key(key)] = (self._clock(), max_age, value)

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(self._full_key(key), None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        full_prefix = self._full_key(prefix)
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(full_prefix)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug("Invalidated %d entries under %s", len(doomed), full_prefix)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.info("Cache %s cleared", self.config.namespace)

    def get_or_load(
        self,
        key: str,
        loader: Callable[[], Any],
        force_refresh: bool = False,
    ) -> Any:
        """
        Return the cached value for key, calling loader on a miss.

        Concurrent callers missing the same key wait on a per-key lock so the
        loader runs once. A loader returning None is not cached.
        """
        if not force_refresh:
            cached = self.get(key)
            if cached is not None:
                return cached

        with self._lock:
            slot = self._load_locks.get(key)
            if slot is None:
                slot = self._load_locks[key] = _LoadSlot()
            slot.waiters += 1

        try:
            with slot.lock:
                # Another caller may have filled the entry while we waited
                if not force_refresh:
                    with self._lock:
                        entry = self._entries.get(self._full_key(key))
                        if entry is not None and not self._expired(entry[0], entry[1]):
                            return entry[2]

                logger.debug("Cache %s loading %s", self.config.namespace, key)
                value = loader()
                if value is not None:
                    self.set(key, value)
                return value
        finally:
            # The last caller out drops the lock so the map only holds keys being loaded
            with self._lock:
                slot.waiters -= 1
                if slot.waiters == 0:
                    self._load_locks.pop(key, None)

    def stats(self) -> CacheStats:
        with self._lock:
            # Drop expired entries so size reflects what is servable
            expired = [
                k for k, (stored_at, max_age, _) in self._entries.items()
                if self._expired(stored_at, max_age)
            ]
            for k in expired:
                del self._entries[k]
            total = self._hits + self._misses
            return CacheStats(
                namespace=self.config.namespace,
                hits=self._hits,
                misses=self._misses,
                hit_rate=round(self._hits / total, 4) if total else 0.0,
                size=len(self._entries),
            )
