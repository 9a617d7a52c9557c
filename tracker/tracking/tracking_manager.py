"""
Tracking service.
Coordinates carrier detection, caching and strategy dispatch.
"""

import asyncio
from collections import defaultdict
from typing import Optional
from loguru import logger

from tracker.exceptions import CarrierDetectionError, ValidationError
from tracker.live.broadcaster import Broadcaster
from tracker.models import CarrierTag, TrackingResult
from tracker.tracking.cache import TrackingCache
from tracker.tracking.carrier_api import CarrierAPI, GenericCarrierAPI
from tracker.tracking.detector import detect_carrier


class TrackingService:
    """
    Looks up tracking results for identifiers.

    Features:
    - Auto-detect carrier from tracking number format
    - Short-lived caching of results
    - Concurrent misses on one key share a single upstream fetch
    - Fresh results are pushed to live viewers
    """

    def __init__(
        self,
        cache: Optional[TrackingCache] = None,
        broadcaster: Optional[Broadcaster] = None,
        strategies: Optional[dict[CarrierTag, CarrierAPI]] = None,
    ):
        self.cache = cache if cache is not None else TrackingCache()
        self.broadcaster = broadcaster
        self._strategies: dict[CarrierTag, CarrierAPI] = dict(strategies or {})
        self._inflight: dict[str, asyncio.Task] = {}

        # Statistics
        self._stats = defaultdict(int)

    def register_strategy(self, carrier: CarrierTag, api: CarrierAPI):
        self._strategies[carrier] = api
        logger.info(f"Registered {type(api).__name__} for {carrier.value}")

    def get_strategy(self, carrier: CarrierTag) -> CarrierAPI:
        """Dedicated strategy for a carrier, or the simulated fallback."""
        api = self._strategies.get(carrier)
        if api is None:
            api = GenericCarrierAPI(carrier)
            self._strategies[carrier] = api
        return api

    async def track(self, tracking_number: Optional[str]) -> TrackingResult:
        """
        Get tracking information for an identifier.

        Raises:
            ValidationError: identifier missing or blank
            CarrierDetectionError: identifier matches no carrier format
            TrackerError: whatever the carrier strategy raised, unchanged
        """
        if not isinstance(tracking_number, str) or not tracking_number.strip():
            raise ValidationError("Tracking number is required.")

        carrier = detect_carrier(tracking_number)
        if carrier == CarrierTag.UNKNOWN:
            raise CarrierDetectionError(tracking_number)

        key = TrackingCache.make_key(carrier, tracking_number)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Serving '{key}' from cache")
            self._stats["cache_hits"] += 1
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, carrier, tracking_number))
            self._inflight[key] = task
            task.add_done_callback(lambda _, key=key: self._inflight.pop(key, None))
        else:
            logger.debug(f"Joining in-flight fetch for '{key}'")
            self._stats["coalesced"] += 1

        # Shielded so one cancelled caller does not cancel the shared fetch
        return await asyncio.shield(task)

    async def _fetch(self, key: str, carrier: CarrierTag, tracking_number: str) -> TrackingResult:
        api = self.get_strategy(carrier)
        logger.info(f"Fetching fresh data for '{key}'")
        self._stats["fetches"] += 1

        try:
            result = await api.get_tracking(tracking_number)
        except Exception as e:
            self._stats["failures"] += 1
            logger.error(f"Tracking lookup failed for {key}: {e}")
            raise

        self.cache.put(key, result)
        logger.info(f"Tracking {tracking_number}: {result.status}")

        if self.broadcaster is not None:
            await self.broadcaster.publish_tracking_update(result)

        return result

    def clear_cache(self):
        """Clear the tracking cache."""
        self.cache.clear()
        logger.info("Tracking cache cleared")

    def get_stats(self) -> dict:
        return {
            "cached_results": len(self.cache),
            "in_flight": len(self._inflight),
            **self._stats,
        }
