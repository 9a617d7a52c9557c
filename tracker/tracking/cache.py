"""
Short-lived cache of tracking results.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional
from loguru import logger

from tracker.models import CarrierTag, TrackingResult

DEFAULT_TTL_SECONDS = 10 * 60


@dataclass
class CacheEntry:
    value: TrackingResult
    expires_at: float


class TrackingCache:
    """
    Key -> (result, expiry) store with a fixed TTL.

    Expiry is lazy: an entry past its expiry is treated as absent on read
    and dropped. ``purge_expired`` can be called to sweep eagerly.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(carrier: CarrierTag, tracking_number: str) -> str:
        return f"{carrier.value.lower()}:{tracking_number}"

    def get(self, key: str) -> Optional[TrackingResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.expires_at <= self._clock():
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None

        return entry.value

    def put(self, key: str, result: TrackingResult, ttl: Optional[float] = None):
        ttl = self.ttl_seconds if ttl is None else ttl
        self._entries[key] = CacheEntry(value=result, expires_at=self._clock() + ttl)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
