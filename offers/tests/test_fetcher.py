import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
from django.core.cache import cache

from offers.services.cache import CacheFacade
from offers.services.config import SearchConfig
from offers.services.fetcher import fetch, fetch_with_status
from offers.services.pipeline import search_offers
from offers.services.providers.partner import PartnerPricingSource
from offers.services.providers.tequila import TequilaSource
from offers.services.types import CabinClass, RawOfferKind, SearchQuery
from offers.tests.helpers import FakeSource, failing_source, tequila_offer

QUERY = SearchQuery(
    origin="JFK",
    destination="LHR",
    depart_date=date(2024, 10, 23),
    return_date=date(2024, 10, 24),
    adults=1,
    children=1,
    cabin=CabinClass.BUSINESS,
)
CONFIG = SearchConfig(structured_timeout_seconds=1.0, budget_seconds=2.0, widget_deadline_seconds=1.0)


def _tequila(handler, **kwargs):
    source = TequilaSource(api_key="test-key", base_url="https://tequila.test/v2/search", transport=httpx.MockTransport(handler), **kwargs)
    source.retry_backoff_seconds = 0
    return source


def test_tequila_request_mapping_and_raw_tagging():
    cache.clear()
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["apikey"] = request.headers.get("apikey")
        return httpx.Response(200, json={"data": [tequila_offer(420), tequila_offer(180), "junk"]})

    raw = asyncio.run(fetch(QUERY, config=CONFIG, sources=[_tequila(handler, result_limit=15)], cache=CacheFacade()))

    assert [item.kind for item in raw] == [RawOfferKind.TEQUILA, RawOfferKind.TEQUILA]
    assert seen["apikey"] == "test-key"
    assert seen["params"]["fly_from"] == "JFK"
    assert seen["params"]["fly_to"] == "LHR"
    assert seen["params"]["date_from"] == seen["params"]["date_to"] == "23/10/2024"
    assert seen["params"]["return_from"] == "24/10/2024"
    assert seen["params"]["selected_cabins"] == "C"
    assert seen["params"]["children"] == "1"
    assert seen["params"]["limit"] == "15"
    assert seen["params"]["sort"] == "price"


def test_three_offers_come_back_cheapest_first():
    cache.clear()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [tequila_offer(420), tequila_offer(180), tequila_offer(300)]})

    result = asyncio.run(
        search_offers(query=QUERY, sort_mode="cheapest", config=CONFIG, sources=[_tequila(handler)], cache=CacheFacade())
    )

    assert [offer.price for offer in result.offers] == [Decimal(180), Decimal(300), Decimal(420)]
    assert result.sources == {"kiwi-tequila": "ok"}
    assert not result.no_results


def test_non_2xx_yields_no_offers_from_that_source_only():
    cache.clear()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    partner = FakeSource("partner-pricing", [tequila_offer(250)])
    raw, statuses = asyncio.run(
        fetch_with_status(QUERY, config=CONFIG, sources=[_tequila(handler), partner], cache=CacheFacade())
    )

    assert statuses == {"kiwi-tequila": "failed:unknown", "partner-pricing": "ok"}
    assert len(raw) == 1


def test_malformed_json_is_a_parse_failure():
    cache.clear()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    raw, statuses = asyncio.run(fetch_with_status(QUERY, config=CONFIG, sources=[_tequila(handler)], cache=CacheFacade()))

    assert raw == []
    assert statuses["kiwi-tequila"] == "failed:parse"


def test_rate_limit_is_classified():
    cache.clear()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    _, statuses = asyncio.run(fetch_with_status(QUERY, config=CONFIG, sources=[_tequila(handler)], cache=CacheFacade()))

    assert statuses["kiwi-tequila"] == "failed:rate_limit"


def test_slow_source_times_out_without_blocking_siblings():
    cache.clear()
    slow = FakeSource("slow", [tequila_offer(100)], delay=5)
    fast = FakeSource("fast", [tequila_offer(200)])
    config = SearchConfig(structured_timeout_seconds=0.05, budget_seconds=2.0)

    raw, statuses = asyncio.run(fetch_with_status(QUERY, config=config, sources=[slow, fast], cache=CacheFacade()))

    assert statuses == {"slow": "timeout", "fast": "ok"}
    assert [item.payload["price"] for item in raw] == [200]


def test_overall_budget_cancels_unfinished_sources():
    cache.clear()
    slow = FakeSource("slow", [tequila_offer(100)], delay=5)
    fast = FakeSource("fast", [tequila_offer(200)])
    config = SearchConfig(structured_timeout_seconds=10, budget_seconds=0.1)

    raw, statuses = asyncio.run(fetch_with_status(QUERY, config=config, sources=[slow, fast], cache=CacheFacade()))

    assert statuses["slow"] == "timeout"
    assert len(raw) == 1


def test_widget_fallback_runs_only_when_structured_sources_are_empty():
    cache.clear()
    widget = FakeSource("widget", [{"price": 318, "from": "JFK", "to": "LHR"}], kind=RawOfferKind.WIDGET_JSON)

    raw, statuses = asyncio.run(
        fetch_with_status(QUERY, config=CONFIG, sources=[failing_source("kiwi-tequila")], fallback=widget, cache=CacheFacade())
    )

    assert widget.calls == 1
    assert statuses["widget"] == "ok"
    assert [item.kind for item in raw] == [RawOfferKind.WIDGET_JSON]

    cache.clear()
    unused = FakeSource("widget", [{"price": 318}], kind=RawOfferKind.WIDGET_JSON)
    _, statuses = asyncio.run(
        fetch_with_status(QUERY, config=CONFIG, sources=[FakeSource("kiwi-tequila", [tequila_offer()])], fallback=unused, cache=CacheFacade())
    )

    assert unused.calls == 0
    assert statuses["widget"] == "skipped"


def test_structured_results_are_cached_per_query():
    cache.clear()
    source = FakeSource("kiwi-tequila", [tequila_offer()])

    async def run():
        facade = CacheFacade()
        await fetch(QUERY, config=CONFIG, sources=[source], cache=facade)
        await fetch(QUERY, config=CONFIG, sources=[source], cache=facade)
        await fetch(SearchQuery(origin="JFK", destination="CDG", depart_date=date(2024, 10, 23)), config=CONFIG, sources=[source], cache=facade)

    asyncio.run(run())

    assert source.calls == 2


def test_disabled_sources_are_reported_not_called():
    cache.clear()
    source = TequilaSource(api_key="", base_url="https://tequila.test")
    partner = PartnerPricingSource(url="", token="")

    raw, statuses = asyncio.run(fetch_with_status(QUERY, config=CONFIG, sources=[source, partner], cache=CacheFacade()))

    assert raw == []
    assert statuses == {"kiwi-tequila": "disabled", "partner-pricing": "disabled"}


def test_unsearchable_query_skips_upstreams():
    source = FakeSource("kiwi-tequila", [tequila_offer()])

    raw = asyncio.run(fetch(SearchQuery(origin="JFK"), config=CONFIG, sources=[source], cache=CacheFacade()))

    assert raw == []
    assert source.calls == 0


def test_partner_source_posts_json_body():
    cache.clear()
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"offers": [{"price": "199.00"}]})

    partner = PartnerPricingSource(url="https://partner.test/search", token="t0k", transport=httpx.MockTransport(handler))
    raw = asyncio.run(fetch(QUERY, config=CONFIG, sources=[partner], cache=CacheFacade()))

    assert seen["method"] == "POST"
    assert seen["auth"] == "Bearer t0k"
    assert seen["body"]["origin"] == "JFK"
    assert seen["body"]["departDate"] == "2024-10-23"
    assert seen["body"]["cabin"] == "Business"
    assert [item.kind for item in raw] == [RawOfferKind.PARTNER]


def test_total_outage_returns_explicit_no_results():
    cache.clear()

    result = asyncio.run(
        search_offers(
            query=QUERY,
            config=CONFIG,
            sources=[failing_source("kiwi-tequila", "timeout"), failing_source("partner-pricing", "auth")],
            cache=CacheFacade(),
        )
    )

    assert result.offers == []
    assert result.no_results
    assert result.sources == {"kiwi-tequila": "failed:timeout", "partner-pricing": "failed:auth"}


def test_retry_and_backoff_fit_inside_the_source_timeout():
    source = TequilaSource(api_key="test-key", base_url="https://tequila.test", timeout_seconds=8)

    assert source.max_retries == 2
    assert source.timeout_seconds * source.max_retries + source.retry_backoff_seconds <= 8


def test_timed_out_first_attempt_is_retried_within_the_budget():
    cache.clear()
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) == 1:
            raise httpx.ReadTimeout("upstream stalled", request=request)
        return httpx.Response(200, json={"data": [tequila_offer(199)]})

    source = TequilaSource(
        api_key="test-key",
        base_url="https://tequila.test/v2/search",
        timeout_seconds=2.0,
        transport=httpx.MockTransport(handler),
    )
    source.retry_backoff_seconds = 0
    config = SearchConfig(structured_timeout_seconds=2.0, budget_seconds=5.0)

    raw, statuses = asyncio.run(fetch_with_status(QUERY, config=config, sources=[source], cache=CacheFacade()))

    assert len(calls) == 2
    assert statuses == {"kiwi-tequila": "ok"}
    assert len(raw) == 1
