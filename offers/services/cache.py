"""Get-or-populate cache in front of every outbound content and pricing call.

Values live in the Django cache (Redis in production). Consistency is
best-effort in both directions:

* concurrent misses for the same key may each run their fetcher; there is no
  single-flight de-duplication of in-flight requests.
* invalidation deletes the keys recorded in a per-family index. The index is
  maintained with a plain read-modify-write, so a populate racing with an
  invalidation, or two populates racing each other, can leave a key behind
  or drop it from the index. Treat ``invalidate_*`` as a hint that the next
  population should start fresh, not as a transactional guarantee.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Sized
from typing import Any, TypeVar

from django.core.cache import cache as default_cache

logger = logging.getLogger(__name__)

T = TypeVar("T")

INDEX_PREFIX = "cache-index"
INDEX_TTL = 86400 * 2


class CacheTTL:
    SHORT = 300
    MEDIUM = 1800
    LONG = 3600
    VERY_LONG = 7200
    DAILY = 86400


def _digest(payload: dict[str, Any]) -> str:
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


class CacheKeys:
    @staticmethod
    def airline_content(airline_code: str, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> str:
        return f"airline:content:{airline_code}:{departure_iata}-{arrival_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def airline_airport_content(airline_code: str, departure_iata: str, lang_id: int, domain_id: int) -> str:
        return f"airline:airport:content:{airline_code}:{departure_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def airline_data(airline_code: str, arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> str:
        return f"airline:data:{airline_code}:{departure_iata}-{arrival_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def airline_airport_data(airline_code: str, departure_iata: str, domain_id: int) -> str:
        return f"airline:airport:data:{airline_code}:{departure_iata}:{domain_id}"

    @staticmethod
    def city_data(city_iata: str, lang_id: int, domain_id: int) -> str:
        return f"city:data:{city_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def airline_contact(airline_code: str) -> str:
        return f"airline:contact:{airline_code}"

    @staticmethod
    def flight_content(arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> str:
        return f"flight:content:{departure_iata}-{arrival_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def flight_data(arrival_iata: str, departure_iata: str, lang_id: int, domain_id: int) -> str:
        return f"flight:data:{departure_iata}-{arrival_iata}:{lang_id}:{domain_id}"

    @staticmethod
    def layout_data(lang_id: int, domain_id: int) -> str:
        return f"layout:data:{lang_id}:{domain_id}"

    @staticmethod
    def offers(source: str, payload: dict[str, Any]) -> str:
        # The digest covers every query field, so different searches never share a key.
        return f"offers:{source}:{_digest(payload)}"


class CacheFamilies:
    @staticmethod
    def airline(airline_code: str) -> str:
        return f"airline:{airline_code}"

    @staticmethod
    def city(city_iata: str) -> str:
        return f"city:{city_iata}"

    @staticmethod
    def flight(departure_iata: str, arrival_iata: str) -> str:
        return f"flight:{departure_iata}-{arrival_iata}"


def is_empty_result(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes)):
        return not value
    if isinstance(value, Sized):
        return len(value) == 0
    return False


class CacheFacade:
    def __init__(self, backend=None) -> None:  # noqa: ANN001
        self.backend = backend if backend is not None else default_cache

    async def _safe_get(self, key: str) -> Any:
        try:
            return await self.backend.aget(key)
        except Exception:  # noqa: BLE001
            logger.warning("Cache read failed for %s; treating as a miss.", key, exc_info=True)
            return None

    async def _safe_set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            await self.backend.aset(key, value, ttl)
            return True
        except Exception:  # noqa: BLE001
            logger.warning("Cache write failed for %s; value served uncached.", key, exc_info=True)
            return False

    async def get_or_fetch(
        self,
        key: str,
        ttl_seconds: int,
        fetcher: Callable[[], Awaitable[T]],
        *,
        families: Iterable[str] = (),
    ) -> T:
        """Return the cached value for *key*, or run *fetcher* and cache its result.

        Only non-empty results are stored. Errors raised by *fetcher* reach the
        caller and leave the key unpopulated, so the next caller fetches again.
        """
        cached = await self._safe_get(key)
        if cached is not None:
            return cached

        value = await fetcher()
        if is_empty_result(value):
            return value

        if await self._safe_set(key, value, ttl_seconds):
            for family in families:
                await self._remember(family, key)
        return value

    async def get_many(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        try:
            return await self.backend.aget_many(keys)
        except Exception:  # noqa: BLE001
            logger.warning("Cache multi-get failed for %d keys; treating all as misses.", len(keys), exc_info=True)
            return {}

    async def set(self, key: str, value: Any, ttl_seconds: int, *, families: Iterable[str] = ()) -> bool:
        stored = await self._safe_set(key, value, ttl_seconds)
        if stored:
            for family in families:
                await self._remember(family, key)
        return stored

    async def get(self, key: str) -> Any:
        return await self._safe_get(key)

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.backend.adelete(key))
        except Exception:  # noqa: BLE001
            logger.warning("Cache delete failed for %s.", key, exc_info=True)
            return False

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.backend.ahas_key(key))
        except Exception:  # noqa: BLE001
            logger.warning("Cache exists check failed for %s.", key, exc_info=True)
            return False

    async def clear(self) -> bool:
        try:
            await self.backend.aclear()
            return True
        except Exception:  # noqa: BLE001
            logger.warning("Cache flush failed.", exc_info=True)
            return False

    async def _remember(self, family: str, key: str) -> None:
        index_key = f"{INDEX_PREFIX}:{family}"
        known = await self._safe_get(index_key) or []
        if key in known:
            return
        await self._safe_set(index_key, [*known, key], INDEX_TTL)

    async def invalidate_family(self, family: str) -> int:
        index_key = f"{INDEX_PREFIX}:{family}"
        known = await self._safe_get(index_key) or []
        logger.info("Cache invalidation requested for %s (%d known keys).", family, len(known))
        if not known:
            return 0
        try:
            await self.backend.adelete_many([*known, index_key])
        except Exception:  # noqa: BLE001
            logger.warning("Cache invalidation for %s did not complete.", family, exc_info=True)
            return 0
        return len(known)

    async def invalidate_airline(self, airline_code: str) -> int:
        return await self.invalidate_family(CacheFamilies.airline(airline_code))

    async def invalidate_city(self, city_iata: str) -> int:
        return await self.invalidate_family(CacheFamilies.city(city_iata))

    async def invalidate_flight(self, departure_iata: str, arrival_iata: str) -> int:
        return await self.invalidate_family(CacheFamilies.flight(departure_iata, arrival_iata))


def get_cache_facade() -> CacheFacade:
    return CacheFacade()


async def get_or_fetch(key: str, ttl_seconds: int, fetcher: Callable[[], Awaitable[T]]) -> T:
    return await get_cache_facade().get_or_fetch(key, ttl_seconds, fetcher)
