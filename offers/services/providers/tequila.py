from __future__ import annotations

from datetime import date
from typing import Any

from django.conf import settings

from offers.services.config import tequila_api_key
from offers.services.providers.base import OfferSource, ProviderException
from offers.services.types import RawOffer, RawOfferKind, SearchQuery


def to_kiwi_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


class TequilaSource(OfferSource):
    """Structured pricing search (Kiwi Tequila ``/v2/search``)."""

    name = "kiwi-tequila"
    timeout_seconds = 8
    max_retries = 2

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        result_limit: int = 30,
        timeout_seconds: float | None = None,
        transport=None,  # noqa: ANN001
    ) -> None:
        super().__init__(transport=transport)
        self.api_key = (api_key if api_key is not None else tequila_api_key()).strip()
        self.base_url = (base_url or settings.TEQUILA_BASE_URL).rstrip("/")
        self.result_limit = result_limit
        if timeout_seconds is not None:
            self.fit_attempts(timeout_seconds)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "apikey": self.api_key,
        }

    def build_params(self, query: SearchQuery) -> dict[str, Any]:
        departure = to_kiwi_date(query.depart_date)
        params: dict[str, Any] = {
            "fly_from": query.origin,
            "fly_to": query.destination,
            "date_from": departure,
            "date_to": departure,
            "adults": query.adults,
            "children": query.children,
            "infants": query.infants,
            "curr": query.currency,
            "selected_cabins": query.cabin.tequila_code,
            "limit": self.result_limit,
            "sort": "price",
            "asc": 1,
            "one_for_city": 0,
            "max_stopovers": 2,
        }
        if query.return_date:
            returning = to_kiwi_date(query.return_date)
            params["return_from"] = returning
            params["return_to"] = returning
        return params

    def cache_payload(self, query: SearchQuery) -> dict[str, Any]:
        return {"source": self.name, "limit": self.result_limit, **query.cache_payload()}

    async def fetch_raw(self, query: SearchQuery) -> list[RawOffer]:
        if not self.enabled:
            raise ProviderException("Tequila API key is not configured.", error_type="disabled")
        if not query.is_searchable:
            return []

        payload = await self._request_json(
            "GET",
            self.base_url,
            headers=self.headers,
            params=self.build_params(query),
        )
        items = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []
        return [RawOffer(kind=RawOfferKind.TEQUILA, payload=item) for item in items if isinstance(item, dict)]
