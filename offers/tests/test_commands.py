from io import StringIO

import httpx
import pytest
from django.core.cache import cache
from django.core.management import CommandError, call_command

from offers import tasks
from offers.services import fetcher
from offers.services.cache import CacheKeys
from offers.services.content import ContentClient
from offers.tests.helpers import FakeSource, tequila_offer


@pytest.fixture(autouse=True)
def _clean_cache():
    cache.clear()
    yield
    cache.clear()


def _patch_sources(monkeypatch, payloads):
    monkeypatch.setattr(fetcher, "default_sources", lambda config: [FakeSource("kiwi-tequila", payloads)])
    monkeypatch.setattr(fetcher, "default_fallback", lambda config: None)


def test_search_flights_prints_ranked_offers(monkeypatch):
    _patch_sources(monkeypatch, [tequila_offer(420), tequila_offer(180)])
    out = StringIO()

    call_command("search_flights", "JFK2310LHR241011", "--sort", "cheapest", stdout=out)

    lines = out.getvalue().splitlines()
    assert lines[0].startswith("JFK-LHR 23/10 / 24/10")
    assert "kiwi-tequila=ok" in lines[0]
    assert "180" in lines[1]
    assert "420" in lines[2]
    assert lines[-1] == "2 offers."


def test_search_flights_reports_no_offers(monkeypatch):
    _patch_sources(monkeypatch, [])
    out = StringIO()

    call_command("search_flights", "DEL1309BOM1", stdout=out)

    assert "kiwi-tequila=empty" in out.getvalue()
    assert "No offers found." in out.getvalue()


def test_search_flights_rejects_incomplete_code():
    with pytest.raises(CommandError):
        call_command("search_flights", "JFK", stdout=StringIO())


def test_warm_layout_targets(settings):
    settings.WARM_LAYOUT_TARGETS = ["1:1", "2", "x:1"]

    assert tasks.warm_layout_targets() == [(1, 1), (2, 1)]


def test_warm_layout_cache_task(settings, monkeypatch):
    settings.WARM_LAYOUT_TARGETS = ["1:1", "2:1"]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["lang"] == "2":
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"header": "en"})

    def build_client():
        return ContentClient(content_base="https://content.test", real_base="https://real.test", transport=httpx.MockTransport(handler))

    monkeypatch.setattr(tasks, "ContentClient", build_client)

    result = tasks.warm_layout_cache.apply().get()

    assert result == {"warmed": {"1:1": True, "2:1": False}}
    assert cache.get(CacheKeys.layout_data(1, 1)) == {"header": "en"}
    assert cache.get(CacheKeys.layout_data(2, 1)) is None
