"""Last-resort scrape of the embedded search widget.

The widget is a third-party page whose markup we do not control. Two
strategies are tried in order on every attempt: JSON embedded in
``<script>`` tags, then result cards found by class-name fragments. When
neither finds anything the page is fetched again on a fixed schedule until
the deadline passes, and the source reports no offers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any

from bs4 import BeautifulSoup, Tag
from django.conf import settings

from offers.services.providers.base import OfferSource, ProviderException
from offers.services.search_code import build_code
from offers.services.types import RawOffer, RawOfferKind, SearchQuery

logger = logging.getLogger(__name__)

PRICE_KEYS = ("price", "fare", "cost", "amount", "total", "cheapest", "lowest")
MAX_WIDGET_PRICE = 10000

SCRIPT_OBJECT_RE = re.compile(r'\{[^{}]*"(?:flight|price|route|airline|departure|arrival)"[^{}]*\}')
CARD_SELECTORS = (
    "[data-flight]",
    '[class*="flight-card"]',
    '[class*="flight-row"]',
    '[class*="ticket"]',
    '[class*="result"]',
    '[class*="offer"]',
    '[class*="variant"]',
)
CARD_FIELDS = {
    "price": '[class*="price"], [class*="cost"], [class*="fare"]',
    "airline": '[class*="airline"], [class*="carrier"]',
    "duration": '[class*="duration"]',
    "stops": '[class*="stop"]',
    "route": '[class*="route"], [class*="path"], [class*="origin-destination"]',
    "departure": '[class*="depart"]',
    "arrival": '[class*="arriv"]',
}


def widget_price(value: Any) -> float | None:
    """Return *value* as a plausible fare, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = re.search(r"\d[\d,]*(?:\.\d+)?", value)
        if not match:
            return None
        number = float(match.group(0).replace(",", ""))
    else:
        return None
    return number if 0 < number < MAX_WIDGET_PRICE else None


def _has_price(candidate: dict[str, Any]) -> bool:
    return any(widget_price(candidate.get(key)) is not None for key in PRICE_KEYS)


def _collect_priced(node: Any, found: list[dict[str, Any]]) -> None:
    # Innermost priced objects win: a wrapper's "total" is usually a result count.
    if isinstance(node, dict):
        before = len(found)
        for value in node.values():
            _collect_priced(value, found)
        if len(found) == before and _has_price(node):
            found.append(node)
    elif isinstance(node, list):
        for value in node:
            _collect_priced(value, found)


def _script_documents(text: str) -> list[Any]:
    text = text.strip()
    if not text:
        return []
    try:
        return [json.loads(text)]
    except ValueError:
        pass
    documents = []
    for match in SCRIPT_OBJECT_RE.finditer(text):
        try:
            documents.append(json.loads(match.group(0)))
        except ValueError:
            continue
    return documents


def extract_script_offers(soup: BeautifulSoup) -> list[RawOffer]:
    found: list[dict[str, Any]] = []
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        for document in _script_documents(script.string or script.get_text() or ""):
            _collect_priced(document, found)
    return [RawOffer(kind=RawOfferKind.WIDGET_JSON, payload=item) for item in found]


def _card_payload(card: Tag) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for field_name, selector in CARD_FIELDS.items():
        node = card.select_one(selector)
        if node is not None:
            payload[field_name] = node.get_text(" ", strip=True)
    for attr, value in card.attrs.items():
        if attr.startswith("data-") and isinstance(value, str):
            payload.setdefault(attr[5:].replace("-", "_"), value)
    payload["text"] = card.get_text(" ", strip=True)
    return payload


def extract_dom_offers(soup: BeautifulSoup) -> list[RawOffer]:
    for selector in CARD_SELECTORS:
        offers = []
        for card in soup.select(selector):
            payload = _card_payload(card)
            if widget_price(payload.get("price")) is not None:
                offers.append(RawOffer(kind=RawOfferKind.WIDGET_DOM, payload=payload))
        if offers:
            return offers
    return []


def parse_widget_html(html: str) -> list[RawOffer]:
    soup = BeautifulSoup(html or "", "html.parser")
    return extract_script_offers(soup) or extract_dom_offers(soup)


class WidgetScrapeSource(OfferSource):
    name = "widget"
    timeout_seconds = 5
    max_retries = 1

    def __init__(
        self,
        *,
        url_template: str | None = None,
        deadline_seconds: float = 13.0,
        retry_schedule: tuple[float, ...] = (1.0, 3.0, 6.0, 10.0),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        transport=None,  # noqa: ANN001
    ) -> None:
        super().__init__(transport=transport)
        template = url_template if url_template is not None else settings.WIDGET_URL_TEMPLATE
        self.url_template = (template or "").strip()
        self.deadline_seconds = deadline_seconds
        self.retry_schedule = retry_schedule
        self._sleep = sleep
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.url_template)

    def widget_url(self, query: SearchQuery) -> str:
        return self.url_template.format(code=build_code(query))

    async def _attempt(self, url: str) -> list[RawOffer]:
        response = await self._request("GET", url, accept="text/html,application/xhtml+xml")
        return parse_widget_html(response.text)

    async def fetch_raw(self, query: SearchQuery) -> list[RawOffer]:
        """Scrape the widget page, never raising.

        Attempts run immediately and then at each offset of the retry
        schedule, measured from the first attempt.
        """
        if not self.enabled or query.is_empty:
            return []

        url = self.widget_url(query)
        started = self._clock()
        for attempt, offset in enumerate((0.0, *self.retry_schedule), start=1):
            elapsed = self._clock() - started
            if offset > elapsed:
                await self._sleep(offset - elapsed)
                elapsed = self._clock() - started
            if elapsed >= self.deadline_seconds:
                break
            try:
                offers = await self._attempt(url)
            except ProviderException as exc:
                logger.info("Widget attempt %d failed (%s): %s", attempt, exc.error_type, exc)
                continue
            except Exception:  # noqa: BLE001
                logger.warning("Widget attempt %d could not be parsed.", attempt, exc_info=True)
                continue
            if offers:
                logger.info("Widget attempt %d found %d offers.", attempt, len(offers))
                return offers

        logger.info("Widget scrape gave up after %.1fs with no offers.", self._clock() - started)
        return []
