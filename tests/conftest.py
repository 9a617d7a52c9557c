"""Shared fixtures for tracker tests."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest

from tracker.live import Broadcaster, ConnectionRegistry, PresenceHub, QueueConnection
from tracker.models import CarrierTag, TrackingResult
from tracker.tracking import CarrierAPI, GenericCarrierAPI, TrackingCache, TrackingService
from tracker.tracking.amazon_session import AmazonSession

PAGES_DIR = Path(__file__).parent / "fixtures" / "pages"

FIXED_NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class StubRandom:
    """Stands in for random.Random with a fixed draw."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class CountingCarrierAPI(CarrierAPI):
    """Simulated carrier that records how often it was asked."""

    def __init__(self, carrier: CarrierTag = CarrierTag.UPS, error: Optional[Exception] = None):
        self.carrier = carrier
        self.error = error
        self.calls = 0
        self._inner = GenericCarrierAPI(carrier, rng=StubRandom(0.9), clock=lambda: FIXED_NOW)

    def get_carrier_name(self) -> str:
        return self.carrier.value

    async def get_tracking(self, tracking_number: str) -> TrackingResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return await self._inner.get_tracking(tracking_number)


class ScriptedAmazonSession(AmazonSession):
    """AmazonSession whose HTTP layer replays canned pages in order."""

    def __init__(self, pages: list, **kwargs):
        kwargs.setdefault("username", "alice@example.com")
        kwargs.setdefault("password", "hunter2")
        super().__init__(**kwargs)
        self.pages = list(pages)
        self.requests: list[tuple[str, str, Optional[dict]]] = []

    async def _request(self, method, url, data=None) -> str:
        self.requests.append((method, url, data))
        await asyncio.sleep(0)  # let concurrent callers interleave
        if not self.pages:
            raise AssertionError(f"Unexpected request: {method} {url}")
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture
def load_page():
    """Read an HTML fixture page by name."""
    def _load(name: str) -> str:
        return (PAGES_DIR / f"{name}.html").read_text(encoding="utf-8")
    return _load


@pytest.fixture
def login_pages(load_page):
    """Pages served by a successful four-step sign-in."""
    return [
        load_page("signin"),
        load_page("password"),
        load_page("home"),
        load_page("orders"),
    ]


@pytest.fixture
def scripted_session():
    def _factory(pages: list, **kwargs) -> ScriptedAmazonSession:
        return ScriptedAmazonSession(pages, **kwargs)
    return _factory


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def stub_random():
    return StubRandom


@pytest.fixture
def counting_carrier():
    def _factory(carrier: CarrierTag = CarrierTag.UPS, error: Optional[Exception] = None):
        return CountingCarrierAPI(carrier, error)
    return _factory


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def hub(registry, broadcaster):
    return PresenceHub(registry, broadcaster)


@pytest.fixture
def connect(hub):
    """Attach a new queue-backed connection to the hub."""
    def _connect(connection_id: str) -> QueueConnection:
        connection = QueueConnection(connection_id)
        hub.connect(connection)
        return connection
    return _connect


@pytest.fixture
def tracking_service(clock, broadcaster):
    return TrackingService(
        cache=TrackingCache(ttl_seconds=600, clock=clock),
        broadcaster=broadcaster,
    )
