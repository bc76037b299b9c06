"""Map every upstream offer shape onto :class:`FlightOffer`.

Each :class:`RawOfferKind` has exactly one mapper. Mappers only read fields;
derived values (duration fallback, layover total, airline display) are
computed once in :func:`_assemble` so every source gets the same rules.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from offers.services.providers.base import parse_iso_duration_minutes
from offers.services.providers.widget import PRICE_KEYS, widget_price
from offers.services.types import (
    BaggageAllowance,
    FlightOffer,
    RawOffer,
    RawOfferKind,
    SearchQuery,
    Segment,
    is_iata_code,
)

logger = logging.getLogger(__name__)

PRICE_RE = re.compile(r"(\d{1,3}(?:[,\s]\d{3})+|\d+)(?:\.(\d{1,2}))?")
HOURS_MINUTES_RE = re.compile(r"(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?", re.IGNORECASE)
IATA_IN_TEXT_RE = re.compile(r"\b[A-Z]{3}\b")

_SOURCE_KINDS = {kind.value: kind for kind in RawOfferKind}


def parse_price(value: Any) -> Decimal | None:
    """Return a positive price from a number or a display string such as ``"$1,204.50"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            price = Decimal(str(value))
        except InvalidOperation:
            return None
    else:
        match = PRICE_RE.search(str(value))
        if not match:
            return None
        whole = re.sub(r"[,\s]", "", match.group(1))
        price = Decimal(f"{whole}.{match.group(2)}" if match.group(2) else whole)
    if not price.is_finite() or price <= 0:
        return None
    return price


def parse_duration_text(value: Any) -> int | None:
    """Minutes from an int, ``"7h 5m"``, ``"425 min"`` or an ISO-8601 duration."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    text = str(value).strip()
    if not text:
        return None
    if text.upper().startswith("P"):
        return parse_iso_duration_minutes(text) or None
    if text.isdigit():
        return int(text) or None
    match = HOURS_MINUTES_RE.search(text)
    if match and (match.group(1) or match.group(2)):
        return int(match.group(1) or 0) * 60 + int(match.group(2) or 0)
    digits = re.search(r"\d+", text)
    return int(digits.group(0)) if digits and "min" in text.lower() else None


def parse_local_datetime(value: Any) -> datetime | None:
    """Wall-clock timestamp at the airport; any offset or ``Z`` suffix is dropped."""
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1]
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _from_epoch(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _minutes_between(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return int((end - start).total_seconds() // 60)


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _iata(value: Any) -> str:
    text = str(value or "").strip().upper()
    return text if is_iata_code(text) else ""


def _sorted_by_leg(segments: Iterable[Segment]) -> tuple[Segment, ...]:
    # Segments without a departure keep their upstream position at the end of their leg.
    indexed = list(enumerate(segments))
    indexed.sort(key=lambda item: (item[1].leg, item[1].departure is None, item[1].departure or datetime.min, item[0]))
    return tuple(segment for _, segment in indexed)


def layover_minutes(segments: Iterable[Segment]) -> int:
    total = 0
    previous: Segment | None = None
    for segment in segments:
        if previous is not None and previous.leg == segment.leg:
            gap = _minutes_between(previous.arrival, segment.departure)
            if gap is not None:
                total += max(0, gap)
        previous = segment
    return total


def _span_minutes(segments: tuple[Segment, ...]) -> int:
    total = 0
    for leg in (0, 1):
        leg_segments = [segment for segment in segments if segment.leg == leg]
        if not leg_segments:
            continue
        span = _minutes_between(leg_segments[0].departure, leg_segments[-1].arrival)
        if span is not None:
            total += max(0, span)
    return total


def _airline_display(codes: list[str]) -> tuple[str, str]:
    distinct: list[str] = []
    for code in codes:
        code = str(code or "").strip()
        if code and code not in distinct:
            distinct.append(code)
    if not distinct:
        return "", ""
    return "/".join(distinct), distinct[0]


def _assemble(
    *,
    source: str,
    query: SearchQuery,
    price: Decimal | None,
    segments: Iterable[Segment] = (),
    origin: str = "",
    destination: str = "",
    origin_city: str = "",
    destination_city: str = "",
    duration_minutes: int | None = None,
    airlines: list[str] | None = None,
    baggage: BaggageAllowance | None = None,
    deep_link: str | None = None,
) -> FlightOffer | None:
    ordered = _sorted_by_leg(segments)
    if not query.is_round_trip:
        ordered = tuple(segment for segment in ordered if segment.leg == 0)
    outbound = [segment for segment in ordered if segment.leg == 0]
    inbound = [segment for segment in ordered if segment.leg == 1]

    origin = (outbound[0].origin if outbound else "") or origin or query.origin
    destination = (outbound[-1].destination if outbound else "") or destination or (query.destination or "")
    if price is None or not is_iata_code(origin) or not is_iata_code(destination):
        return None

    if not duration_minutes or duration_minutes < 0:
        duration_minutes = _span_minutes(ordered)

    carrier_codes = [segment.carrier for segment in ordered if segment.carrier] or airlines or []
    airline, airline_code = _airline_display(carrier_codes)

    depart_date: date | None = query.depart_date
    if outbound and outbound[0].departure:
        depart_date = outbound[0].departure.date()
    return_date: date | None = query.return_date
    if inbound and inbound[0].departure:
        return_date = inbound[0].departure.date()

    return FlightOffer(
        origin=origin,
        destination=destination,
        price=price,
        currency=query.currency,
        source=source,
        origin_city=origin_city or (outbound[0].origin_city if outbound else ""),
        destination_city=destination_city or (outbound[-1].destination_city if outbound else ""),
        segments=ordered,
        duration_minutes=int(duration_minutes or 0),
        layover_minutes=layover_minutes(ordered),
        airline=airline,
        airline_code=airline_code,
        depart_date=depart_date,
        return_date=return_date,
        baggage=baggage or BaggageAllowance(),
        deep_link=deep_link or None,
    )


def map_tequila(payload: dict[str, Any], query: SearchQuery) -> FlightOffer | None:
    route = payload.get("route") if isinstance(payload.get("route"), list) else []
    segments = []
    utc_spans: dict[int, list[datetime | None]] = {}
    for item in route:
        if not isinstance(item, dict):
            continue
        leg = 1 if item.get("return") in (1, True, "1") else 0
        segments.append(
            Segment(
                origin=_iata(item.get("flyFrom")),
                destination=_iata(item.get("flyTo")),
                origin_city=str(item.get("cityFrom") or ""),
                destination_city=str(item.get("cityTo") or ""),
                departure=parse_local_datetime(item.get("local_departure")),
                arrival=parse_local_datetime(item.get("local_arrival")),
                carrier=str(item.get("operating_carrier") or item.get("airline") or ""),
                flight_number=str(item.get("operating_flight_no") or item.get("flight_no") or ""),
                leg=leg,
            )
        )
        span = utc_spans.setdefault(leg, [None, None])
        departed = _from_epoch(item.get("dTimeUTC"))
        arrived = _from_epoch(item.get("aTimeUTC"))
        if departed and (span[0] is None or departed < span[0]):
            span[0] = departed
        if arrived and (span[1] is None or arrived > span[1]):
            span[1] = arrived

    duration = payload.get("duration")
    total = _number(duration.get("total")) if isinstance(duration, dict) else None
    duration_minutes = int(total) if total and total > 0 else None
    if duration_minutes is None:
        # UTC epochs give a true elapsed time across time zones.
        legs = [leg for leg in sorted(utc_spans) if leg == 0 or query.is_round_trip]
        spans = [_minutes_between(*utc_spans[leg]) for leg in legs]
        if spans and all(span is not None for span in spans):
            duration_minutes = sum(max(0, span) for span in spans)

    baglimit = payload.get("baglimit") if isinstance(payload.get("baglimit"), dict) else {}
    bags_price = payload.get("bags_price") if isinstance(payload.get("bags_price"), dict) else {}
    first_fee = _number(bags_price.get("1"))
    second_fee = _number(bags_price.get("2"))
    airlines = payload.get("airlines") if isinstance(payload.get("airlines"), list) else None

    return _assemble(
        source=RawOfferKind.TEQUILA.value,
        query=query,
        price=parse_price(payload.get("price")),
        segments=segments,
        origin_city=str(payload.get("cityFrom") or ""),
        destination_city=str(payload.get("cityTo") or ""),
        duration_minutes=duration_minutes,
        airlines=[str(code) for code in airlines] if airlines else None,
        baggage=BaggageAllowance(
            cabin_kg=_number(baglimit.get("hand_weight")),
            checked_kg=_number(baglimit.get("hold_weight")),
            first_bag_fee=Decimal(str(first_fee)) if first_fee is not None else None,
            second_bag_fee=Decimal(str(second_fee)) if second_fee is not None else None,
        ),
        deep_link=payload.get("deep_link") if isinstance(payload.get("deep_link"), str) else None,
    )


def map_partner(payload: dict[str, Any], query: SearchQuery) -> FlightOffer | None:
    itineraries = payload.get("itineraries") if isinstance(payload.get("itineraries"), list) else []
    segments = []
    duration_minutes = 0
    for leg, itinerary in enumerate(itineraries[:2]):
        if not isinstance(itinerary, dict):
            continue
        duration_minutes += parse_iso_duration_minutes(itinerary.get("duration"))
        for item in itinerary.get("segments") or []:
            if not isinstance(item, dict):
                continue
            departure = item.get("departure") if isinstance(item.get("departure"), dict) else {}
            arrival = item.get("arrival") if isinstance(item.get("arrival"), dict) else {}
            carrier = str(item.get("operatingCarrierCode") or item.get("carrierCode") or "")
            segments.append(
                Segment(
                    origin=_iata(departure.get("iataCode")),
                    destination=_iata(arrival.get("iataCode")),
                    origin_city=str(departure.get("cityName") or ""),
                    destination_city=str(arrival.get("cityName") or ""),
                    departure=parse_local_datetime(departure.get("at")),
                    arrival=parse_local_datetime(arrival.get("at")),
                    carrier=carrier,
                    flight_number=f"{carrier}{item.get('number') or ''}" if item.get("number") else "",
                    leg=leg,
                )
            )

    price = payload.get("price")
    if isinstance(price, dict):
        price = price.get("grandTotal") or price.get("total")
    baggage = payload.get("baggage") if isinstance(payload.get("baggage"), dict) else {}
    first_fee = parse_price(baggage.get("firstBagFee"))
    second_fee = parse_price(baggage.get("secondBagFee"))
    airlines = payload.get("validatingAirlineCodes")

    return _assemble(
        source=RawOfferKind.PARTNER.value,
        query=query,
        price=parse_price(price),
        segments=segments,
        duration_minutes=duration_minutes or None,
        airlines=[str(code) for code in airlines] if isinstance(airlines, list) and airlines else None,
        baggage=BaggageAllowance(
            cabin_kg=_number(baggage.get("cabinKg")),
            checked_kg=_number(baggage.get("checkedKg")),
            first_bag_fee=first_fee,
            second_bag_fee=second_fee,
        ),
        deep_link=payload.get("deepLink") if isinstance(payload.get("deepLink"), str) else None,
    )


def _first_price(payload: dict[str, Any]) -> Decimal | None:
    for key in PRICE_KEYS:
        value = widget_price(payload.get(key))
        if value is not None:
            return parse_price(payload.get(key))
    return None


def _route_codes(payload: dict[str, Any]) -> tuple[str, str]:
    origin = _iata(payload.get("from") or payload.get("origin") or payload.get("flyFrom"))
    destination = _iata(payload.get("to") or payload.get("destination") or payload.get("flyTo"))
    if not (origin and destination):
        codes = IATA_IN_TEXT_RE.findall(str(payload.get("route") or ""))
        if len(codes) >= 2:
            origin, destination = origin or codes[0], destination or codes[-1]
    return origin, destination


def map_widget(payload: dict[str, Any], query: SearchQuery, kind: RawOfferKind) -> FlightOffer | None:
    origin, destination = _route_codes(payload)
    airline = str(payload.get("airline") or payload.get("carrier") or "").strip()
    return _assemble(
        source=kind.value,
        query=query,
        price=_first_price(payload),
        origin=origin,
        destination=destination,
        duration_minutes=parse_duration_text(payload.get("duration")),
        airlines=[airline] if airline else None,
        deep_link=payload.get("deepLink") if isinstance(payload.get("deepLink"), str) else None,
    )


_MAPPERS: dict[RawOfferKind, Callable[[dict[str, Any], SearchQuery], FlightOffer | None]] = {
    RawOfferKind.TEQUILA: map_tequila,
    RawOfferKind.PARTNER: map_partner,
    RawOfferKind.WIDGET_JSON: lambda payload, query: map_widget(payload, query, RawOfferKind.WIDGET_JSON),
    RawOfferKind.WIDGET_DOM: lambda payload, query: map_widget(payload, query, RawOfferKind.WIDGET_DOM),
}


def _as_raw_offer(item: Any, source: str) -> RawOffer | None:
    if isinstance(item, RawOffer):
        return item
    if isinstance(item, dict):
        kind = _SOURCE_KINDS.get(source)
        if kind is None:
            return None
        return RawOffer(kind=kind, payload=item)
    return None


def normalize(raw: Iterable[Any], source: str, query: SearchQuery) -> list[FlightOffer]:
    """Canonical offers for *raw*, in input order.

    Plain dicts are read as the shape named by *source*. Entries without a
    usable price or route are dropped.
    """
    offers: list[FlightOffer] = []
    dropped = 0
    for item in raw or []:
        raw_offer = _as_raw_offer(item, source)
        if raw_offer is None or not isinstance(raw_offer.payload, dict):
            dropped += 1
            continue
        try:
            offer = _MAPPERS[raw_offer.kind](raw_offer.payload, query)
        except Exception:  # noqa: BLE001
            logger.warning("Could not map %s offer; dropping it.", raw_offer.kind.value, exc_info=True)
            offer = None
        if offer is None:
            dropped += 1
            continue
        offers.append(offer)
    if dropped:
        logger.info("Dropped %d of %d %s offers without a usable price or route.", dropped, dropped + len(offers), source)
    return offers
