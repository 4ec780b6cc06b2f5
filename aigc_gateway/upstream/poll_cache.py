import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Any, Dict, Tuple

from ..logging_config import logger

CacheKey = Tuple[str, str]


class PollCache:
    """
    Short-lived cache of raw job records keyed by (credential hash, job id).

    Concurrent status polls for the same job within `ttl_seconds` share one
    upstream round trip. A ttl of 0 disables caching entirely.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[CacheKey, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key_hash: str, job_id: str) -> Any | None:
        if not self.enabled:
            return None
        key = (key_hash, job_id)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, record = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return record

    def put(self, key_hash: str, job_id: str, record: Any) -> None:
        if not self.enabled:
            return
        key = (key_hash, job_id)
        with self._lock:
            self._entries[key] = (self._clock(), record)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    async def fetch(
        self, key_hash: str, job_id: str, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        cached = self.get(key_hash, job_id)
        if cached is not None:
            logger.debug("poll cache hit for job %s", job_id)
            return cached
        record = await loader()
        self.put(key_hash, job_id, record)
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["PollCache"]
