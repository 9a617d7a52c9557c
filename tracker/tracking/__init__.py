"""
Tracking module.
Detects carriers, looks up tracking histories and caches them.
"""

from tracker.tracking.carrier_api import CarrierAPI, GenericCarrierAPI, AmazonCarrierAPI
from tracker.tracking.detector import detect_carrier
from tracker.tracking.cache import TrackingCache
from tracker.tracking.tracking_manager import TrackingService

__all__ = [
    "CarrierAPI",
    "GenericCarrierAPI",
    "AmazonCarrierAPI",
    "detect_carrier",
    "TrackingCache",
    "TrackingService",
]
