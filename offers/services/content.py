"""Cached readers for the descriptive content and route data APIs.

TTL follows how often each resource changes: layout and contact details
daily, city data for two hours, editorial content for an hour, live route
data for half an hour. Every populated key is filed under its airline,
city or flight family so the ``invalidate_*`` hooks can find it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from django.conf import settings

from offers.services.cache import CacheFacade, CacheFamilies, CacheKeys, CacheTTL, get_cache_facade, is_empty_result
from offers.services.providers.base import ProviderException, ProviderMixin

logger = logging.getLogger(__name__)

ENGLISH_LANG_ID = 1


def first_object(payload: Any) -> Any:
    if isinstance(payload, list):
        return payload[0] if payload else None
    return payload


class ContentClient(ProviderMixin):
    name = "content"
    timeout_seconds = 10
    max_retries = 2

    def __init__(
        self,
        *,
        content_base: str | None = None,
        real_base: str | None = None,
        cache: CacheFacade | None = None,
        transport=None,  # noqa: ANN001
    ) -> None:
        super().__init__(transport=transport)
        self.content_base = (content_base or settings.CONTENT_API_BASE).rstrip("/")
        self.real_base = (real_base or settings.REAL_API_BASE).rstrip("/")
        self.cache = cache or get_cache_facade()

    async def _get(self, url: str, params: dict[str, Any]) -> Any:
        return await self._request_json("GET", url, params=params)

    async def _cached(
        self,
        key: str,
        ttl: int,
        fetcher: Callable[[], Awaitable[Any]],
        families: Iterable[str] = (),
    ) -> Any:
        try:
            return await self.cache.get_or_fetch(key, ttl, fetcher, families=families)
        except ProviderException as exc:
            logger.warning("Content fetch for %s failed (%s): %s", key, exc.error_type, exc)
            return None

    async def _with_english_fallback(self, url: str, params: dict[str, Any]) -> Any:
        data = first_object(await self._get(url, params))
        if is_empty_result(data) and params.get("lang_id") != ENGLISH_LANG_ID:
            logger.info("No localized data at %s for lang_id=%s; retrying in English.", url, params.get("lang_id"))
            data = first_object(await self._get(url, {**params, "lang_id": ENGLISH_LANG_ID}))
        return data

    async def layout(self, lang_id: int, domain_id: int) -> Any:
        async def fetcher() -> Any:
            return await self._get(f"{self.content_base}/web", {"lang": lang_id, "domain_id": domain_id})

        return await self._cached(CacheKeys.layout_data(lang_id, domain_id), CacheTTL.DAILY, fetcher)

    async def airline_content(
        self, airline_code: str, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int
    ) -> Any:
        params = {
            "airline_code": airline_code,
            "arrival_iata": arrival_iata,
            "departure_iata": departure_iata,
            "lang_id": lang_id,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return first_object(await self._get(f"{self.content_base}/content/airlines", params))

        return await self._cached(
            CacheKeys.airline_content(airline_code, arrival_iata, departure_iata, lang_id, domain_id),
            CacheTTL.LONG,
            fetcher,
            [CacheFamilies.airline(airline_code)],
        )

    async def airline_airport_content(self, airline_code: str, departure_iata: str, lang_id: int, domain_id: int) -> Any:
        params = {
            "airline_code": airline_code,
            "departure_iata": departure_iata,
            "lang_id": lang_id,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return first_object(await self._get(f"{self.content_base}/content/airlines", params))

        return await self._cached(
            CacheKeys.airline_airport_content(airline_code, departure_iata, lang_id, domain_id),
            CacheTTL.LONG,
            fetcher,
            [CacheFamilies.airline(airline_code)],
        )

    async def airline_data(
        self, airline_code: str, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int
    ) -> Any:
        params = {
            "airline_code": airline_code,
            "arrival_iata": arrival_iata,
            "departure_iata": departure_iata,
            "lang_id": lang_id,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return await self._with_english_fallback(f"{self.real_base}/real/airlines", params)

        return await self._cached(
            CacheKeys.airline_data(airline_code, arrival_iata, departure_iata, lang_id, domain_id),
            CacheTTL.MEDIUM,
            fetcher,
            [CacheFamilies.airline(airline_code)],
        )

    async def airline_airport_data(self, airline_code: str, departure_iata: str, domain_id: int) -> Any:
        # Keeps the whole list: one entry per route served from the airport.
        params = {
            "airline_code": airline_code,
            "departure_iata": departure_iata,
            "lang_id": ENGLISH_LANG_ID,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return await self._get(f"{self.real_base}/real/airlines", params)

        return await self._cached(
            CacheKeys.airline_airport_data(airline_code, departure_iata, domain_id),
            CacheTTL.MEDIUM,
            fetcher,
            [CacheFamilies.airline(airline_code)],
        )

    async def airline_contact(self, airline_code: str) -> Any:
        async def fetcher() -> Any:
            return first_object(await self._get(f"{self.real_base}/real/airlines", {"iata_code": airline_code}))

        return await self._cached(
            CacheKeys.airline_contact(airline_code),
            CacheTTL.DAILY,
            fetcher,
            [CacheFamilies.airline(airline_code)],
        )

    async def _fetch_city(self, city_iata: str, lang_id: int, domain_id: int) -> Any:
        params = {"city_iata": city_iata, "lang_id": lang_id, "domain_id": domain_id}
        return await self._get(f"{self.real_base}/real/city", params)

    async def city_data(self, city_iata: str, lang_id: int, domain_id: int) -> Any:
        async def fetcher() -> Any:
            return await self._fetch_city(city_iata, lang_id, domain_id)

        return await self._cached(
            CacheKeys.city_data(city_iata, lang_id, domain_id),
            CacheTTL.VERY_LONG,
            fetcher,
            [CacheFamilies.city(city_iata)],
        )

    async def multiple_city_data(self, city_iatas: list[str], lang_id: int, domain_id: int) -> list[Any]:
        """City data for each IATA code, in order; ``None`` where nothing was found.

        One multi-get serves every cached city; only the misses go upstream.
        """
        keys = [CacheKeys.city_data(city_iata, lang_id, domain_id) for city_iata in city_iatas]
        cached = await self.cache.get_many(keys)
        results: list[Any] = [cached.get(key) for key in keys]
        missing = [index for index, value in enumerate(results) if value is None]
        if not missing:
            return results

        fetched = await asyncio.gather(
            *(self._fetch_city(city_iatas[index], lang_id, domain_id) for index in missing),
            return_exceptions=True,
        )
        for index, data in zip(missing, fetched):
            if isinstance(data, ProviderException):
                logger.warning("City data for %s failed (%s).", city_iatas[index], data.error_type)
                continue
            if isinstance(data, BaseException):
                raise data
            if is_empty_result(data):
                continue
            await self.cache.set(keys[index], data, CacheTTL.VERY_LONG, families=[CacheFamilies.city(city_iatas[index])])
            results[index] = data
        return results

    async def flight_content(self, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> Any:
        params = {
            "arrival_iata": arrival_iata,
            "departure_iata": departure_iata,
            "lang_id": lang_id,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return first_object(await self._get(f"{self.content_base}/content/flights", params))

        return await self._cached(
            CacheKeys.flight_content(arrival_iata, departure_iata, lang_id, domain_id),
            CacheTTL.LONG,
            fetcher,
            [CacheFamilies.flight(departure_iata, arrival_iata)],
        )

    async def flight_data(self, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> Any:
        params = {
            "arrival_iata": arrival_iata,
            "departure_iata": departure_iata,
            "lang_id": lang_id,
            "domain_id": domain_id,
        }

        async def fetcher() -> Any:
            return await self._with_english_fallback(f"{self.real_base}/real/flights", params)

        return await self._cached(
            CacheKeys.flight_data(arrival_iata, departure_iata, lang_id, domain_id),
            CacheTTL.MEDIUM,
            fetcher,
            [CacheFamilies.flight(departure_iata, arrival_iata)],
        )
