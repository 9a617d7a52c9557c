"""
HTML parsing of provider shipment-tracking pages.

Providers serve several page layouts. Event extraction runs an ordered list
of strategies against the page; the first that yields events wins:
1. Embedded JSON state (most reliable)
2. Progress-tracker event cards
3. Legacy ship-track table
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from bs4 import BeautifulSoup
from loguru import logger


@dataclass
class ParsedEvent:
    status: str
    location: str = ""
    timestamp: Optional[datetime] = None


@dataclass
class ParsedPage:
    events: list[ParsedEvent] = field(default_factory=list)
    status_text: Optional[str] = None
    estimated_delivery: Optional[str] = None


EventExtractor = Callable[[BeautifulSoup], list[ParsedEvent]]

TIMESTAMP_FORMATS = (
    "%B %d, %Y %I:%M %p",
    "%A, %B %d, %Y %I:%M %p",
    "%m/%d/%Y %I:%M %p",
    "%B %d, %Y",
    "%A, %B %d, %Y",
    "%m/%d/%Y",
)


def parse_timestamp(text: str) -> Optional[datetime]:
    """Parse a provider timestamp. Naive values are taken as UTC."""
    text = " ".join(text.split())
    if not text:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
        for fmt in TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _text(node) -> str:
    if node is None:
        return ""
    return " ".join(node.get_text(" ", strip=True).split())


def _field(item: dict, name: str) -> str:
    """String field of a JSON object; anything that is not a string counts as empty."""
    value = item.get(name)
    return value.strip() if isinstance(value, str) else ""


def extract_embedded_json(soup: BeautifulSoup) -> list[ParsedEvent]:
    """Events from the page's embedded ``tracking-events-data`` JSON blob."""
    script = soup.find("script", attrs={"id": "tracking-events-data"})
    if script is None or not script.string:
        return []

    try:
        data = json.loads(script.string)
    except json.JSONDecodeError:
        logger.debug("Embedded tracking JSON is not valid JSON")
        return []

    items = data.get("events") if isinstance(data, dict) else None
    if not isinstance(items, list):
        logger.debug("Embedded tracking JSON has no events list")
        return []

    events = []
    for item in items:
        if not isinstance(item, dict):
            continue
        status = _field(item, "statusText")
        if not status:
            continue
        events.append(ParsedEvent(
            status=status,
            location=_field(item, "location"),
            timestamp=parse_timestamp(_field(item, "eventDate")),
        ))
    return events


def extract_progress_tracker(soup: BeautifulSoup) -> list[ParsedEvent]:
    """Events from progress-tracker cards (current layout)."""
    events = []
    for card in soup.select("div.tracking-event-container"):
        status = _text(card.select_one(".tracking-event-message"))
        if not status:
            continue
        when = f"{_text(card.select_one('.tracking-event-date'))} {_text(card.select_one('.tracking-event-time'))}"
        events.append(ParsedEvent(
            status=status,
            location=_text(card.select_one(".tracking-event-location")),
            timestamp=parse_timestamp(when),
        ))
    return events


def extract_legacy_table(soup: BeautifulSoup) -> list[ParsedEvent]:
    """Events from the legacy ship-track table: date | time | location | status."""
    table = soup.find("table", attrs={"id": "tracking-events"})
    if table is None:
        return []

    events = []
    for row in table.find_all("tr"):
        cells = row.find_all("td")
        if len(cells) < 4:
            continue  # header or spacer row
        date, time_of_day, location, status = (_text(cell) for cell in cells[:4])
        if not status:
            continue
        events.append(ParsedEvent(
            status=status,
            location=location,
            timestamp=parse_timestamp(f"{date} {time_of_day}"),
        ))
    return events


EVENT_EXTRACTORS: tuple[EventExtractor, ...] = (
    extract_embedded_json,
    extract_progress_tracker,
    extract_legacy_table,
)

STATUS_SELECTORS = (
    "#primaryStatus",
    ".milestone-primaryMessage",
    ".pt-status-main-text",
    "#ship-track-status",
)

DELIVERY_SELECTORS = (
    "#promiseMessage",
    ".pt-promise-main-slot",
    "#ship-track-promise",
)


class PageParser:
    """
    Turns a provider tracking page into events plus top-level status text.

    Extraction strategies and selectors are injectable so new page layouts
    can be supported without touching the provider client.
    """

    def __init__(
        self,
        extractors: tuple[EventExtractor, ...] = EVENT_EXTRACTORS,
        status_selectors: tuple[str, ...] = STATUS_SELECTORS,
        delivery_selectors: tuple[str, ...] = DELIVERY_SELECTORS,
    ):
        self.extractors = extractors
        self.status_selectors = status_selectors
        self.delivery_selectors = delivery_selectors

    def _first_text(self, soup: BeautifulSoup, selectors: tuple[str, ...]) -> Optional[str]:
        for selector in selectors:
            text = _text(soup.select_one(selector))
            if text:
                return text
        return None

    def parse(self, html: str) -> ParsedPage:
        soup = BeautifulSoup(html, "html.parser")

        events: list[ParsedEvent] = []
        for extractor in self.extractors:
            events = extractor(soup)
            if events:
                logger.debug(f"Page parsed with {extractor.__name__}: {len(events)} event(s)")
                break

        return ParsedPage(
            events=events,
            status_text=self._first_text(soup, self.status_selectors),
            estimated_delivery=self._first_text(soup, self.delivery_selectors),
        )
