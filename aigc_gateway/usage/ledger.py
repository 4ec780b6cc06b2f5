from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Tuple

from ..logging_config import logger

PROMPT_SUMMARY_LIMIT = 500


@dataclass(frozen=True)
class UsageEntry:
    created_at: int
    model_name: str
    prompt: str
    image_count: int
    path: str
    kind: str

    @classmethod
    def record(
        cls,
        *,
        model_name: str,
        prompt: str,
        image_count: int,
        path: str,
        kind: str,
        now: float | None = None,
    ) -> "UsageEntry":
        summary = prompt or ""
        if len(summary) > PROMPT_SUMMARY_LIMIT:
            summary = summary[:PROMPT_SUMMARY_LIMIT] + "..."
        return cls(
            created_at=int(now if now is not None else time.time()),
            model_name=model_name,
            prompt=summary,
            image_count=image_count,
            path=path,
            kind=kind,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UsageLedger:
    """
    In-memory, per credential hash, most-recent-first usage log.

    Each key keeps at most `capacity` entries; older entries fall off the end.
    Entries are lost on process restart.
    """

    def __init__(self, capacity: int = 2000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: Dict[str, Deque[UsageEntry]] = {}
        self._lock = threading.Lock()

    def append(self, key_hash: str, entry: UsageEntry) -> None:
        with self._lock:
            bucket = self._entries.get(key_hash)
            if bucket is None:
                bucket = deque(maxlen=self.capacity)
                self._entries[key_hash] = bucket
            bucket.appendleft(entry)
        logger.debug(
            "usage: %s %s (%s) recorded for key %s", entry.kind, entry.path, entry.model_name, key_hash
        )

    def snapshot(self, key_hash: str) -> List[UsageEntry]:
        with self._lock:
            bucket = self._entries.get(key_hash)
            return list(bucket) if bucket else []

    def page(self, key_hash: str, *, page: int, size: int) -> Tuple[List[UsageEntry], int]:
        """Zero-based page of the most-recent-first entries plus the total count."""
        entries = self.snapshot(key_hash)
        start = max(0, page) * size
        return entries[start : start + size], len(entries)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(b) for b in self._entries.values())


__all__ = ["PROMPT_SUMMARY_LIMIT", "UsageEntry", "UsageLedger"]
