"""
Carrier strategies for tracking information.
Every strategy turns an identifier into a normalized TrackingResult.
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import urlencode
from loguru import logger

from tracker.exceptions import UpstreamParseError
from tracker.models import ActivityEvent, CarrierTag, GeoPoint, TrackingResult
from tracker.tracking.amazon_session import AmazonSession
from tracker.tracking.geocoding import geocode
from tracker.tracking.page_parser import PageParser


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CarrierAPI(ABC):
    """Base class for carrier strategies."""

    @abstractmethod
    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        """Get tracking information for a shipment."""
        pass

    @abstractmethod
    def get_carrier_name(self) -> str:
        """Get the carrier name."""
        pass


class GenericCarrierAPI(CarrierAPI):
    """
    Simulated carrier used when no dedicated integration exists.

    Produces a fixed four-stop cross-country route. Whether the package
    has been delivered is drawn once per call.
    """

    ROUTE = (
        ("Package received by carrier", "Los Angeles, CA"),
        ("Departed from facility", "Denver, CO"),
        ("Arrived at destination hub", "Chicago, IL"),
    )
    FINAL_LOCATION = "New York, NY"

    GEO_COORDS = {
        "Los Angeles, CA": GeoPoint(lat=34.05, lon=-118.24),
        "Denver, CO": GeoPoint(lat=39.73, lon=-104.99),
        "Chicago, IL": GeoPoint(lat=41.87, lon=-87.62),
        "New York, NY": GeoPoint(lat=40.71, lon=-74.00),
    }

    def __init__(
        self,
        carrier: CarrierTag,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.carrier = carrier
        self._rng = rng or random.Random()
        self._clock = clock

    def get_carrier_name(self) -> str:
        return self.carrier.value

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        logger.info(f"Simulating tracking for {self.carrier.value}: {tracking_number}")

        delivered = self._rng.random() > 0.5
        now = self._clock()

        # Built newest first, like a carrier scan history
        activity = []
        if delivered:
            activity.append(ActivityEvent(
                status="Delivered",
                location=self.FINAL_LOCATION,
                timestamp=now,
                geo=self.GEO_COORDS[self.FINAL_LOCATION],
            ))
        else:
            activity.append(ActivityEvent(
                status="Out for delivery",
                location=self.FINAL_LOCATION,
                timestamp=now + timedelta(days=1),
                geo=self.GEO_COORDS[self.FINAL_LOCATION],
            ))

        for days_ago, (status, location) in zip((1, 2, 3), reversed(self.ROUTE)):
            activity.append(ActivityEvent(
                status=status,
                location=location,
                timestamp=now - timedelta(days=days_ago),
                geo=self.GEO_COORDS[location],
            ))

        delivery_date = now.date() if delivered else (now + timedelta(days=1)).date()

        return TrackingResult(
            carrier=self.carrier.display_name,
            tracking_number=tracking_number,
            status="Delivered" if delivered else "In Transit",
            estimated_delivery=delivery_date.isoformat(),
            activity=list(reversed(activity)),
        )


class AmazonCarrierAPI(CarrierAPI):
    """
    Amazon order tracking through a signed-in web session.

    The order's tracking page is fetched through the shared AmazonSession
    and handed to the page parser.
    """

    TRACKING_PATH = "/gp/your-account/ship-track"

    def __init__(
        self,
        session: AmazonSession,
        parser: Optional[PageParser] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.parser = parser or PageParser()
        self._clock = clock

    def get_carrier_name(self) -> str:
        return CarrierTag.AMAZON.value

    def tracking_url(self, order_id: str) -> str:
        query = urlencode({"orderId": order_id})
        return f"{self.session.base_url}{self.TRACKING_PATH}?{query}"

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        html = await self.session.get_page(self.tracking_url(tracking_number))
        page = self.parser.parse(html)
        now = self._clock()

        activity = [
            ActivityEvent(
                status=event.status,
                location=event.location,
                timestamp=event.timestamp or now,
                geo=geocode(event.location),
            )
            for event in page.events
        ]
        # Pages list newest first; stable sort keeps same-instant order
        activity.sort(key=lambda event: event.timestamp)

        if not activity:
            if not page.status_text:
                raise UpstreamParseError(
                    f"Could not find tracking information for Amazon order {tracking_number}."
                )
            logger.warning(f"No tracking events for {tracking_number}, using page status only")
            activity = [ActivityEvent(status=page.status_text, timestamp=now)]

        return TrackingResult(
            carrier=CarrierTag.AMAZON.display_name,
            tracking_number=tracking_number,
            status=page.status_text or activity[-1].status,
            estimated_delivery=page.estimated_delivery or "Unknown",
            activity=activity,
        )
