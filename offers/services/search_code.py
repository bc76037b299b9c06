"""Compact search codes as they appear in URL fragments.

``JFK2310LHR241011`` reads as: from JFK on 23/10, to LHR returning 24/10,
one adult and one child. A ``b`` anywhere outside the airport codes asks for
business class. ``DEL1309BOM1`` is a one-way trip for a single adult.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from offers.services.types import CabinClass, SearchQuery

logger = logging.getLogger(__name__)

AIRPORT_RE = re.compile(r"[A-Z]{3}")
DATE_RE = re.compile(r"\d{4}")
TRAILING_DIGITS_RE = re.compile(r"(\d+)$")
BUSINESS_RE = re.compile(r"[bB]")


def _strip_fragment(code: str) -> str:
    probe = code.strip()
    if "#" in probe:
        probe = probe.split("#", 1)[1]
    probe = probe.split("?", 1)[0]
    return probe.rstrip("/").rsplit("/", 1)[-1]


def _ddmm_to_date(digits: str, year: int) -> date | None:
    try:
        return date(year, int(digits[2:4]), int(digits[0:2]))
    except ValueError:
        return None


def _roll_forward(value: date) -> date | None:
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        return None


def _passengers(tail: str) -> tuple[int, int]:
    match = TRAILING_DIGITS_RE.search(tail)
    if not match:
        return 1, 0
    digits = match.group(1)[-2:]
    adults = int(digits[0]) or 1
    children = int(digits[1]) if len(digits) == 2 else 0
    return adults, children


def _parse(code: str, today: date, currency: str) -> SearchQuery:
    code = _strip_fragment(code)
    airports = list(AIRPORT_RE.finditer(code))
    if not airports:
        return SearchQuery(currency=currency)

    dates: list[date | None] = []
    consumed_until = 0
    for match in airports[:2]:
        date_match = DATE_RE.match(code, match.end())
        if date_match:
            dates.append(_ddmm_to_date(date_match.group(0), today.year))
            consumed_until = date_match.end()
        else:
            dates.append(None)
            consumed_until = match.end()

    origin = airports[0].group(0)
    destination = airports[1].group(0) if len(airports) > 1 else None
    depart_date = dates[0]
    return_date = dates[1] if len(dates) > 1 else None
    if depart_date and return_date and return_date < depart_date:
        return_date = _roll_forward(return_date)

    outside_airports = AIRPORT_RE.sub("", code)
    cabin = CabinClass.BUSINESS if BUSINESS_RE.search(outside_airports) else CabinClass.ECONOMY

    adults, children = _passengers(code[consumed_until:])

    return SearchQuery(
        origin=origin,
        destination=destination,
        depart_date=depart_date,
        return_date=return_date,
        adults=adults,
        children=children,
        cabin=cabin,
        currency=currency,
    )


def parse(code: str, *, today: date | None = None, currency: str = "USD") -> SearchQuery:
    """Decode *code* into a :class:`SearchQuery`. Never raises.

    Missing airport codes give an empty query (``query.is_empty``); a
    missing or impossible date leaves the date unset.
    """
    if not isinstance(code, str):
        return SearchQuery(currency=currency)
    try:
        return _parse(code, today or date.today(), currency)
    except Exception:  # noqa: BLE001
        logger.warning("Unparseable search code %r, using an empty query.", code, exc_info=True)
        return SearchQuery(currency=currency)


def build_code(query: SearchQuery) -> str:
    """Inverse of :func:`parse` for queries that carry at least an origin."""
    if query.is_empty:
        return ""
    parts = [query.origin]
    if query.depart_date:
        parts.append(query.depart_date.strftime("%d%m"))
    if query.destination:
        parts.append(query.destination)
        if query.return_date:
            parts.append(query.return_date.strftime("%d%m"))
    if query.cabin == CabinClass.BUSINESS:
        parts.append("b")
    parts.append(str(max(1, min(query.adults, 9))))
    if query.children:
        parts.append(str(min(query.children, 9)))
    return "".join(parts)
