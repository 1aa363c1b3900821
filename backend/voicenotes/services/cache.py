"""Short-lived per-record cache in front of single-transcript fetches."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from voicenotes.models.schemas import Transcript

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Transcript
    stored_at: float


class TranscriptCache:
    """Read-through TTL cache keyed by transcript id.

    Process-local; nothing is shared between workers.  Mutations must call
    :meth:`invalidate` so that a known change is never hidden by the TTL.
    Expired entries are dropped whenever a new entry is stored.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, transcript_id: object) -> bool:
        return transcript_id in self._entries

    def _is_fresh(self, entry: _Entry, now: float) -> bool:
        return now - entry.stored_at < self.ttl_seconds

    def peek(self, transcript_id: str) -> Optional[Transcript]:
        """Return a fresh cached value without fetching."""
        entry = self._entries.get(transcript_id)
        if entry is not None and self._is_fresh(entry, self._clock()):
            return entry.value
        return None

    def put(self, transcript_id: str, value: Transcript) -> None:
        now = self._clock()
        self._sweep(now)
        self._entries[transcript_id] = _Entry(value=value, stored_at=now)

    async def get(self, transcript_id: str, fetch: Callable[[], Awaitable[Transcript]]) -> Transcript:
        cached = self.peek(transcript_id)
        if cached is not None:
            logger.debug("Cache hit for transcript %s", transcript_id)
            return cached
        value = await fetch()
        self.put(transcript_id, value)
        return value

    def invalidate(self, transcript_id: str) -> None:
        self._entries.pop(transcript_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def _sweep(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
        for key in expired:
            del self._entries[key]
