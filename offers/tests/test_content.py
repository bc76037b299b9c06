import asyncio

import httpx
from django.core.cache import cache

from offers.services.cache import CacheFacade, CacheKeys
from offers.services.content import ContentClient, first_object


class Upstream:
    """Routes content API calls to canned responses and records them."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        self.calls.append((request.url.path, params))
        responder = self.routes.get(request.url.path)
        if responder is None:
            return httpx.Response(404)
        status, body = responder(params)
        return httpx.Response(status, json=body)


def _client(upstream):
    client = ContentClient(
        content_base="https://content.test",
        real_base="https://real.test",
        cache=CacheFacade(),
        transport=httpx.MockTransport(upstream),
    )
    client.retry_backoff_seconds = 0
    return client


def test_first_object_unwraps_lists():
    assert first_object([{"a": 1}, {"a": 2}]) == {"a": 1}
    assert first_object([]) is None
    assert first_object({"a": 1}) == {"a": 1}


def test_route_data_falls_back_to_english_and_is_cached():
    cache.clear()

    def flights(params):
        if params["lang_id"] == "1":
            return 200, [{"route": "JFK-LHR", "lang": "en"}]
        return 200, []

    upstream = Upstream({"/real/flights": flights})
    client = _client(upstream)

    async def run():
        first = await client.flight_data("LHR", "JFK", 2, 1)
        second = await client.flight_data("LHR", "JFK", 2, 1)
        return first, second

    first, second = asyncio.run(run())

    assert first == second == {"route": "JFK-LHR", "lang": "en"}
    assert [params["lang_id"] for _, params in upstream.calls] == ["2", "1"]


def test_airline_contact_is_first_object():
    cache.clear()
    upstream = Upstream({"/real/airlines": lambda params: (200, [{"iata_code": params["iata_code"], "phone": "+44 20"}])})
    client = _client(upstream)

    contact = asyncio.run(client.airline_contact("BA"))

    assert contact == {"iata_code": "BA", "phone": "+44 20"}
    assert asyncio.run(CacheFacade().get(CacheKeys.airline_contact("BA"))) == contact


def test_airline_airport_data_keeps_the_whole_list():
    cache.clear()
    routes = [{"arrival_iata": "LHR"}, {"arrival_iata": "CDG"}]
    upstream = Upstream({"/real/airlines": lambda params: (200, routes)})

    assert asyncio.run(_client(upstream).airline_airport_data("BA", "JFK", 1)) == routes
    assert upstream.calls[0][1]["lang_id"] == "1"


def test_layout_uses_lang_and_domain():
    cache.clear()
    upstream = Upstream({"/web": lambda params: (200, {"header": {"lang": params["lang"]}})})

    layout = asyncio.run(_client(upstream).layout(2, 1))

    assert layout == {"header": {"lang": "2"}}
    assert upstream.calls == [("/web", {"lang": "2", "domain_id": "1"})]


def test_multiple_city_data_only_fetches_misses():
    cache.clear()
    upstream = Upstream({"/real/city": lambda params: (200, {"city": params["city_iata"]}) if params["city_iata"] != "XXX" else (200, {})})
    client = _client(upstream)

    async def run():
        await client.cache.set(CacheKeys.city_data("PAR", 1, 1), {"city": "PAR", "cached": True}, 60)
        return await client.multiple_city_data(["PAR", "LON", "XXX"], 1, 1)

    results = asyncio.run(run())

    assert results == [{"city": "PAR", "cached": True}, {"city": "LON"}, None]
    assert sorted(params["city_iata"] for _, params in upstream.calls) == ["LON", "XXX"]
    assert asyncio.run(client.cache.get(CacheKeys.city_data("LON", 1, 1))) == {"city": "LON"}


def test_failures_return_none_and_are_not_cached():
    cache.clear()
    upstream = Upstream({"/content/flights": lambda params: (500, {"error": "boom"})})
    client = _client(upstream)

    assert asyncio.run(client.flight_content("LHR", "JFK", 1, 1)) is None
    assert asyncio.run(client.cache.exists(CacheKeys.flight_content("LHR", "JFK", 1, 1))) is False


def test_invalidating_a_flight_drops_its_content():
    cache.clear()
    upstream = Upstream(
        {
            "/content/flights": lambda params: (200, [{"title": "New York to London"}]),
            "/real/flights": lambda params: (200, [{"route": "JFK-LHR"}]),
        }
    )
    client = _client(upstream)

    async def run():
        await client.flight_content("LHR", "JFK", 1, 1)
        await client.flight_data("LHR", "JFK", 1, 1)
        removed = await client.cache.invalidate_flight("JFK", "LHR")
        await client.flight_content("LHR", "JFK", 1, 1)
        return removed

    assert asyncio.run(run()) == 2
    assert [path for path, _ in upstream.calls] == ["/content/flights", "/real/flights", "/content/flights"]
