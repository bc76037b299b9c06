from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date

from offers.services import search_code
from offers.services.cache import CacheFacade
from offers.services.config import SearchConfig
from offers.services.fetcher import fetch_with_status
from offers.services.normalizer import normalize
from offers.services.providers.base import OfferSource
from offers.services.ranking import SortMode, ViewFilters, summarize, view
from offers.services.types import FlightOffer, RawOffer, SearchQuery, SearchResult

logger = logging.getLogger(__name__)


def normalize_all(raw: list[RawOffer], query: SearchQuery) -> list[FlightOffer]:
    by_kind: dict[str, list[RawOffer]] = {}
    for item in raw:
        by_kind.setdefault(item.kind.value, []).append(item)
    offers: list[FlightOffer] = []
    for kind, items in by_kind.items():
        offers.extend(normalize(items, kind, query))
    return offers


async def search_offers(
    *,
    code: str | None = None,
    query: SearchQuery | None = None,
    filters: ViewFilters | None = None,
    sort_mode: SortMode | str = SortMode.BEST,
    config: SearchConfig | None = None,
    sources: Sequence[OfferSource] | None = None,
    fallback: OfferSource | None = None,
    cache: CacheFacade | None = None,
    today: date | None = None,
) -> SearchResult:
    """Decode, fetch, normalize and rank one search.

    Upstream trouble never escapes: the result is then empty and
    ``no_results`` is set. ``summary`` describes the unfiltered offers so
    filter controls can show the full range.
    """
    config = config or SearchConfig.from_settings()
    if query is None:
        query = search_code.parse(code or "", today=today, currency=config.default_currency)

    if not query.is_searchable:
        logger.info("Search skipped: query has no origin, destination or departure date.")
        return SearchResult(query=query, offers=[], summary=summarize([]), sources={})

    raw, statuses = await fetch_with_status(query, config=config, sources=sources, fallback=fallback, cache=cache)
    offers = normalize_all(raw, query)
    ranked = view(offers, filters, sort_mode)
    if not ranked:
        logger.info("No offers for %s-%s on %s.", query.origin, query.destination, query.depart_date)
    return SearchResult(query=query, offers=ranked, summary=summarize(offers), sources=statuses)
