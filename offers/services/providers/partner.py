from __future__ import annotations

from typing import Any

from django.conf import settings

from offers.services.config import partner_pricing_url
from offers.services.providers.base import OfferSource, ProviderException
from offers.services.types import RawOffer, RawOfferKind, SearchQuery


class PartnerPricingSource(OfferSource):
    """Pricing partner that takes the search as a JSON POST body."""

    name = "partner-pricing"
    timeout_seconds = 8
    max_retries = 1

    def __init__(
        self,
        *,
        url: str | None = None,
        token: str | None = None,
        timeout_seconds: float | None = None,
        transport=None,  # noqa: ANN001
    ) -> None:
        super().__init__(transport=transport)
        self.url = (url if url is not None else partner_pricing_url()).strip()
        self.token = (token if token is not None else settings.PARTNER_PRICING_TOKEN).strip()
        if timeout_seconds is not None:
            self.fit_attempts(timeout_seconds)

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def build_body(self, query: SearchQuery) -> dict[str, Any]:
        return {
            "origin": query.origin,
            "destination": query.destination,
            "departDate": query.depart_date.isoformat() if query.depart_date else None,
            "returnDate": query.return_date.isoformat() if query.return_date else None,
            "adults": query.adults,
            "children": query.children,
            "infants": query.infants,
            "currency": query.currency,
            "cabin": query.cabin.value,
        }

    async def fetch_raw(self, query: SearchQuery) -> list[RawOffer]:
        if not self.enabled:
            raise ProviderException("Partner pricing URL is not configured.", error_type="disabled")
        if not query.is_searchable:
            return []

        payload = await self._request_json("POST", self.url, headers=self.headers, json_body=self.build_body(query))
        if isinstance(payload, dict):
            payload = payload.get("offers") or payload.get("data") or []
        if not isinstance(payload, list):
            return []
        return [RawOffer(kind=RawOfferKind.PARTNER, payload=item) for item in payload if isinstance(item, dict)]
