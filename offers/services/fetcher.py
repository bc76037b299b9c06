from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import httpx

from offers.services.cache import CacheFacade, CacheFamilies, CacheKeys, CacheTTL, get_cache_facade
from offers.services.config import SearchConfig
from offers.services.providers.base import OfferSource, ProviderException
from offers.services.providers.partner import PartnerPricingSource
from offers.services.providers.tequila import TequilaSource
from offers.services.providers.widget import WidgetScrapeSource
from offers.services.types import RawOffer, SearchQuery

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_DISABLED = "disabled"
STATUS_TIMEOUT = "timeout"
STATUS_SKIPPED = "skipped"


def default_sources(config: SearchConfig) -> list[OfferSource]:
    return [
        TequilaSource(result_limit=config.result_limit, timeout_seconds=config.structured_timeout_seconds),
        PartnerPricingSource(timeout_seconds=config.structured_timeout_seconds),
    ]


def default_fallback(config: SearchConfig) -> OfferSource | None:
    if not config.widget_fallback_enabled:
        return None
    return WidgetScrapeSource(
        deadline_seconds=config.widget_deadline_seconds,
        retry_schedule=config.widget_retry_schedule,
    )


async def _run_source(
    source: OfferSource,
    query: SearchQuery,
    *,
    timeout_seconds: float,
    cache: CacheFacade,
) -> tuple[list[RawOffer], str]:
    key = CacheKeys.offers(source.name, source.cache_payload(query))
    families = [CacheFamilies.flight(query.origin, query.destination)]

    async def fetcher() -> list[RawOffer]:
        return await asyncio.wait_for(source.fetch_raw(query), timeout=timeout_seconds)

    try:
        offers = await cache.get_or_fetch(key, CacheTTL.SHORT, fetcher, families=families)
    except ProviderException as exc:
        logger.warning(
            "Offer source %s failed (%s, status=%s): %s",
            source.name,
            exc.error_type,
            exc.http_status,
            exc,
        )
        return [], f"failed:{exc.error_type}"
    except asyncio.TimeoutError:
        logger.warning("Offer source %s exceeded %.1fs.", source.name, timeout_seconds)
        return [], STATUS_TIMEOUT
    except httpx.HTTPError as exc:
        logger.warning("Offer source %s transport error: %s", source.name, exc)
        return [], "failed:unknown"
    except Exception:  # noqa: BLE001
        logger.exception("Offer source %s raised unexpectedly.", source.name)
        return [], "failed:unknown"

    offers = list(offers or [])
    return offers, STATUS_OK if offers else STATUS_EMPTY


async def fetch_with_status(
    query: SearchQuery,
    *,
    config: SearchConfig | None = None,
    sources: Sequence[OfferSource] | None = None,
    fallback: OfferSource | None = None,
    cache: CacheFacade | None = None,
) -> tuple[list[RawOffer], dict[str, str]]:
    """Collect raw offers from every enabled source plus a status per source.

    Structured sources run concurrently, each behind its own offer cache
    entry and timeout. Whatever has finished when the search budget runs
    out is combined; the rest is cancelled. The widget fallback runs only
    when the structured sources produced nothing.
    """
    config = config or SearchConfig.from_settings()
    cache = cache or get_cache_facade()
    if sources is None:
        sources = default_sources(config)
        if fallback is None:
            fallback = default_fallback(config)

    statuses: dict[str, str] = {}
    if not query.is_searchable:
        logger.info("Query is not searchable; skipping upstream calls.")
        return [], statuses

    active = []
    for source in sources:
        if source.enabled:
            active.append(source)
        else:
            statuses[source.name] = STATUS_DISABLED

    tasks = {
        source.name: asyncio.create_task(
            _run_source(source, query, timeout_seconds=config.structured_timeout_seconds, cache=cache)
        )
        for source in active
    }
    if tasks:
        _, pending = await asyncio.wait(tasks.values(), timeout=config.budget_seconds)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    raw: list[RawOffer] = []
    for name, task in tasks.items():
        if task.cancelled():
            logger.warning("Offer source %s did not finish within the %.1fs budget.", name, config.budget_seconds)
            statuses[name] = STATUS_TIMEOUT
            continue
        offers, status = task.result()
        statuses[name] = status
        raw.extend(offers)

    if fallback is not None:
        if raw:
            statuses[fallback.name] = STATUS_SKIPPED
        elif not fallback.enabled:
            statuses[fallback.name] = STATUS_DISABLED
        else:
            # Hard stop slightly past the scraper's own deadline.
            offers, status = await _run_source(
                fallback,
                query,
                timeout_seconds=config.widget_deadline_seconds + 2,
                cache=cache,
            )
            statuses[fallback.name] = status
            raw.extend(offers)

    logger.info("Fetched %d raw offers (%s).", len(raw), ", ".join(f"{k}={v}" for k, v in statuses.items()))
    return raw, statuses


async def fetch(
    query: SearchQuery,
    *,
    config: SearchConfig | None = None,
    sources: Sequence[OfferSource] | None = None,
    fallback: OfferSource | None = None,
    cache: CacheFacade | None = None,
) -> list[RawOffer]:
    raw, _ = await fetch_with_status(query, config=config, sources=sources, fallback=fallback, cache=cache)
    return raw
