from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from offers.services.types import FlightOffer


class SortMode(str, Enum):
    BEST = "best"
    CHEAPEST = "cheapest"
    FASTEST = "fastest"

    @classmethod
    def from_value(cls, value: Any) -> "SortMode":
        if isinstance(value, cls):
            return value
        wanted = str(value or "").strip().lower()
        for mode in cls:
            if mode.value == wanted:
                return mode
        return cls.BEST


STOPS_FILTERS = {
    "any": None,
    "direct": 0,
    "one": 1,
}


@dataclass(frozen=True)
class ViewFilters:
    """Optional, conjunctive result filters. ``None`` or empty means no restriction."""

    max_stops: int | None = None
    airlines: tuple[str, ...] = field(default_factory=tuple)
    price_ceiling: Decimal | None = None
    duration_ceiling: int | None = None

    @classmethod
    def from_params(
        cls,
        *,
        stops: str | None = None,
        airlines: list[str] | tuple[str, ...] | None = None,
        price_max: Any = None,
        duration_max: Any = None,
    ) -> "ViewFilters":
        return cls(
            max_stops=STOPS_FILTERS.get(str(stops or "any").strip().lower()),
            airlines=tuple(code.strip().upper() for code in airlines or () if code and code.strip()),
            price_ceiling=Decimal(str(price_max)) if price_max not in (None, "") else None,
            duration_ceiling=int(duration_max) if duration_max not in (None, "") else None,
        )


def best_score(offer: FlightOffer) -> Decimal:
    return offer.price + Decimal(offer.duration_minutes) / 2


def _matches_airline(offer: FlightOffer, allowed: set[str]) -> bool:
    candidates = {offer.airline_code.upper(), offer.airline.upper(), *(code.upper() for code in offer.carriers)}
    candidates.update(part.upper() for part in offer.airline.split("/") if part)
    return bool(candidates & allowed)


def _passes(offer: FlightOffer, filters: ViewFilters, allowed: set[str]) -> bool:
    if filters.max_stops is not None and offer.stop_count > filters.max_stops:
        return False
    if allowed and not _matches_airline(offer, allowed):
        return False
    if filters.price_ceiling is not None and offer.price > filters.price_ceiling:
        return False
    if filters.duration_ceiling is not None and offer.duration_minutes > filters.duration_ceiling:
        return False
    return True


_SORT_KEYS = {
    SortMode.CHEAPEST: lambda offer: (offer.price, offer.duration_minutes),
    SortMode.FASTEST: lambda offer: (offer.duration_minutes, offer.price),
    SortMode.BEST: best_score,
}


def view(
    offers: list[FlightOffer],
    filters: ViewFilters | Mapping[str, Any] | None = None,
    sort_mode: SortMode | str = SortMode.BEST,
) -> list[FlightOffer]:
    """Filter and order *offers* without touching the input list.

    ``sorted`` is stable, so offers with equal keys keep their incoming
    order and repeated calls return the same sequence.
    """
    if isinstance(filters, Mapping):
        filters = ViewFilters.from_params(**filters)
    filters = filters or ViewFilters()
    allowed = {code.upper() for code in filters.airlines}
    kept = [offer for offer in offers if _passes(offer, filters, allowed)]
    return sorted(kept, key=_SORT_KEYS[SortMode.from_value(sort_mode)])


def summarize(offers: list[FlightOffer]) -> dict[str, Any]:
    if not offers:
        return {
            "minPrice": None,
            "maxPrice": None,
            "minDuration": None,
            "maxDuration": None,
            "directCount": 0,
            "airlines": [],
        }
    prices = [offer.price for offer in offers]
    durations = [offer.duration_minutes for offer in offers if offer.duration_minutes > 0]
    airlines = sorted({offer.airline for offer in offers if offer.airline})
    return {
        "minPrice": min(prices),
        "maxPrice": max(prices),
        "minDuration": min(durations) if durations else None,
        "maxDuration": max(durations) if durations else None,
        "directCount": sum(1 for offer in offers if offer.stop_count == 0),
        "airlines": airlines,
    }
