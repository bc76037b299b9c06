from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

IATA_RE = re.compile(r"^[A-Z]{3}$")


class CabinClass(str, Enum):
    ECONOMY = "Economy"
    PREMIUM_ECONOMY = "PremiumEconomy"
    BUSINESS = "Business"
    FIRST = "First"

    @property
    def tequila_code(self) -> str:
        return _TEQUILA_CABIN_CODES[self]

    @classmethod
    def from_value(cls, value: Any) -> "CabinClass":
        """Accept enum names, display values or the single-letter upstream codes."""
        if isinstance(value, cls):
            return value
        probe = str(value or "").strip().replace("_", "").replace(" ", "").lower()
        for cabin in cls:
            if probe in {cabin.value.lower(), cabin.name.replace("_", "").lower(), cabin.tequila_code.lower()}:
                return cabin
        return cls.ECONOMY


_TEQUILA_CABIN_CODES = {
    CabinClass.ECONOMY: "M",
    CabinClass.PREMIUM_ECONOMY: "W",
    CabinClass.BUSINESS: "C",
    CabinClass.FIRST: "F",
}


def is_iata_code(value: str | None) -> bool:
    return bool(value) and bool(IATA_RE.match(value))


@dataclass(frozen=True)
class SearchQuery:
    origin: str = ""
    destination: str | None = None
    depart_date: date | None = None
    return_date: date | None = None
    adults: int = 1
    children: int = 0
    infants: int = 0
    cabin: CabinClass = CabinClass.ECONOMY
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.origin and not is_iata_code(self.origin):
            raise ValueError(f"Origin must be a 3-letter uppercase IATA code, got {self.origin!r}")
        if self.destination and not is_iata_code(self.destination):
            raise ValueError(f"Destination must be a 3-letter uppercase IATA code, got {self.destination!r}")
        if self.depart_date and self.return_date and self.depart_date > self.return_date:
            raise ValueError("Departure date must not be after the return date")

    @property
    def is_empty(self) -> bool:
        return not self.origin

    @property
    def is_round_trip(self) -> bool:
        return self.return_date is not None

    @property
    def is_searchable(self) -> bool:
        return bool(self.origin and self.destination and self.depart_date)

    def cache_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["depart_date"] = self.depart_date.isoformat() if self.depart_date else None
        payload["return_date"] = self.return_date.isoformat() if self.return_date else None
        payload["cabin"] = self.cabin.value
        return payload


class RawOfferKind(str, Enum):
    TEQUILA = "kiwi-tequila"
    PARTNER = "partner-pricing"
    WIDGET_JSON = "widget-json"
    WIDGET_DOM = "widget-dom"


@dataclass(frozen=True)
class RawOffer:
    """One untrusted upstream offer, tagged with the shape it arrived in."""

    kind: RawOfferKind
    payload: dict[str, Any]


@dataclass(frozen=True)
class Segment:
    origin: str
    destination: str
    origin_city: str = ""
    destination_city: str = ""
    departure: datetime | None = None
    arrival: datetime | None = None
    carrier: str = ""
    flight_number: str = ""
    leg: int = 0


@dataclass(frozen=True)
class BaggageAllowance:
    cabin_kg: float | None = None
    checked_kg: float | None = None
    first_bag_fee: Decimal | None = None
    second_bag_fee: Decimal | None = None


@dataclass(frozen=True)
class FlightOffer:
    origin: str
    destination: str
    price: Decimal
    currency: str
    source: str
    origin_city: str = ""
    destination_city: str = ""
    segments: tuple[Segment, ...] = ()
    duration_minutes: int = 0
    layover_minutes: int = 0
    airline: str = ""
    airline_code: str = ""
    depart_date: date | None = None
    return_date: date | None = None
    baggage: BaggageAllowance = field(default_factory=BaggageAllowance)
    deep_link: str | None = None

    @property
    def outbound_segments(self) -> tuple[Segment, ...]:
        return tuple(segment for segment in self.segments if segment.leg == 0)

    @property
    def return_segments(self) -> tuple[Segment, ...]:
        return tuple(segment for segment in self.segments if segment.leg == 1)

    @property
    def stop_count(self) -> int:
        return max(0, len(self.outbound_segments) - 1)

    @property
    def carriers(self) -> list[str]:
        seen: list[str] = []
        for segment in self.segments:
            if segment.carrier and segment.carrier not in seen:
                seen.append(segment.carrier)
        return seen


@dataclass(frozen=True)
class SearchResult:
    query: SearchQuery
    offers: list[FlightOffer]
    summary: dict[str, Any]
    sources: dict[str, str]

    @property
    def no_results(self) -> bool:
        return not self.offers
