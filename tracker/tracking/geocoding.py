"""
Best-effort geocoding of carrier scan locations.
"""

from typing import Optional

from tracker.models import GeoPoint

# Known city substrings -> coordinates. Matched case-insensitively.
KNOWN_LOCATIONS: dict[str, tuple[float, float]] = {
    "los angeles": (34.05, -118.24),
    "denver": (39.73, -104.99),
    "chicago": (41.87, -87.62),
    "new york": (40.71, -74.00),
    "seattle": (47.61, -122.33),
    "san francisco": (37.77, -122.42),
    "dallas": (32.78, -96.80),
    "houston": (29.76, -95.37),
    "atlanta": (33.75, -84.39),
    "miami": (25.76, -80.19),
    "phoenix": (33.45, -112.07),
    "louisville": (38.25, -85.76),
    "memphis": (35.15, -90.05),
    "indianapolis": (39.77, -86.16),
    "ontario": (34.06, -117.65),
    "boston": (42.36, -71.06),
}


def geocode(location: str) -> Optional[GeoPoint]:
    """Return coordinates for a location string, or None if unknown."""
    if not location:
        return None

    needle = location.lower()
    for city, (lat, lon) in KNOWN_LOCATIONS.items():
        if city in needle:
            return GeoPoint(lat=lat, lon=lon)

    return None
