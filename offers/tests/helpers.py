from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from offers.services.providers.base import OfferSource, ProviderException
from offers.services.types import FlightOffer, RawOffer, RawOfferKind, SearchQuery, Segment


class FakeSource(OfferSource):
    """In-memory source: returns canned payloads, raises, or stalls."""

    def __init__(
        self,
        name: str,
        payloads: list[dict[str, Any]] | None = None,
        *,
        kind: RawOfferKind = RawOfferKind.TEQUILA,
        error: Exception | None = None,
        delay: float = 0.0,
        enabled: bool = True,
    ) -> None:
        super().__init__()
        self.name = name
        self.payloads = payloads or []
        self.kind = kind
        self.error = error
        self.delay = delay
        self._enabled = enabled
        self.calls = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def fetch_raw(self, query: SearchQuery) -> list[RawOffer]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [RawOffer(kind=self.kind, payload=payload) for payload in self.payloads]


def failing_source(name: str, error_type: str = "unknown") -> FakeSource:
    return FakeSource(name, error=ProviderException(f"{name} down", error_type=error_type))


def tequila_segment(
    fly_from: str,
    fly_to: str,
    departure: str,
    arrival: str,
    *,
    carrier: str = "BA",
    flight_no: int = 100,
    leg: int = 0,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "flyFrom": fly_from,
        "flyTo": fly_to,
        "cityFrom": f"{fly_from} city",
        "cityTo": f"{fly_to} city",
        "local_departure": f"{departure}.000Z",
        "local_arrival": f"{arrival}.000Z",
        "airline": carrier,
        "operating_carrier": carrier,
        "flight_no": flight_no,
        "return": leg,
        **extra,
    }


def tequila_offer(price: Any = 420, route: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    if route is None:
        route = [tequila_segment("JFK", "LHR", "2024-10-23T18:00:00", "2024-10-24T06:00:00")]
    return {
        "price": price,
        "route": route,
        "airlines": sorted({segment["airline"] for segment in route}),
        "cityFrom": "New York",
        "cityTo": "London",
        "deep_link": "https://www.kiwi.com/deep?flightsId=abc",
        **extra,
    }


HUBS = ("KEF", "DUB", "AMS")


def make_offer(
    price: str | int,
    duration: int,
    *,
    stops: int = 0,
    airline: str = "BA",
    source: str = "kiwi-tequila",
) -> FlightOffer:
    airports = ["JFK", *HUBS[:stops], "LHR"]
    start = datetime(2024, 10, 23, 8, 0)
    segments = []
    for index in range(stops + 1):
        departure = start + timedelta(hours=3 * index)
        segments.append(
            Segment(
                origin=airports[index],
                destination=airports[index + 1],
                departure=departure,
                arrival=departure + timedelta(hours=2),
                carrier=airline,
                flight_number=f"{airline}{100 + index}",
            )
        )
    return FlightOffer(
        origin="JFK",
        destination="LHR",
        price=Decimal(str(price)),
        currency="USD",
        source=source,
        segments=tuple(segments),
        duration_minutes=duration,
        airline=airline,
        airline_code=airline,
        depart_date=date(2024, 10, 23),
    )
