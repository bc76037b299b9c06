from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import isodate

from offers.services.http_client import build_async_http_client
from offers.services.types import RawOffer, SearchQuery


class ProviderException(Exception):
    def __init__(
        self,
        message: str,
        *,
        error_type: str = "unknown",
        http_status: int | None = None,
        latency_ms: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.http_status = http_status
        self.latency_ms = latency_ms


def classify_http_status(status_code: int | None) -> str:
    if status_code == 429:
        return "rate_limit"
    if status_code in {401, 403}:
        return "auth"
    if status_code in {402}:
        return "quota"
    return "unknown"


class ProviderMixin:
    name = "base_provider"
    timeout_seconds: float = 8
    max_retries = 1
    retry_backoff_seconds: float = 1.0

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.transport = transport

    def fit_attempts(self, total_seconds: float) -> None:
        """Size each attempt so every retry and its backoff fit in *total_seconds*."""
        backoff = sum(self.retry_backoff_seconds * 2 ** (attempt - 1) for attempt in range(1, self.max_retries))
        self.timeout_seconds = max(0.5, (total_seconds - backoff) / self.max_retries)

    def _client(self, *, accept: str = "application/json") -> httpx.AsyncClient:
        return build_async_http_client(accept=accept, timeout=self.timeout_seconds, transport=self.transport)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        accept: str = "application/json",
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        for attempt in range(1, self.max_retries + 1):
            started = time.monotonic()
            try:
                async with self._client(accept=accept) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=headers,
                        params=params,
                        json=json_body,
                    )
                response.raise_for_status()
                return response
            except httpx.TimeoutException as exc:
                latency_ms = int((time.monotonic() - started) * 1000)
                if attempt == self.max_retries:
                    raise ProviderException(
                        f"{method} {url} timeout: {exc}",
                        error_type="timeout",
                        latency_ms=latency_ms,
                    ) from exc
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code if exc.response is not None else None
                latency_ms = int((time.monotonic() - started) * 1000)
                if attempt == self.max_retries:
                    raise ProviderException(
                        f"{method} {url} status {status_code}",
                        error_type=classify_http_status(status_code),
                        http_status=status_code,
                        latency_ms=latency_ms,
                    ) from exc
            except httpx.RequestError as exc:
                latency_ms = int((time.monotonic() - started) * 1000)
                if attempt == self.max_retries:
                    raise ProviderException(
                        f"{method} {url} request error: {exc}",
                        error_type="timeout",
                        latency_ms=latency_ms,
                    ) from exc
            await asyncio.sleep(self.retry_backoff_seconds * 2 ** (attempt - 1))

        raise ProviderException(f"{method} {url} exhausted retries.")

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderException(
                f"{method} {url} parse failure: {exc}",
                error_type="parse",
                http_status=response.status_code,
            ) from exc


class OfferSource(ProviderMixin, ABC):
    """One upstream that turns a :class:`SearchQuery` into raw offers."""

    name = "base_source"

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def fetch_raw(self, query: SearchQuery) -> list[RawOffer]:
        raise NotImplementedError

    def cache_payload(self, query: SearchQuery) -> dict[str, Any]:
        return {"source": self.name, **query.cache_payload()}


def parse_iso_duration_minutes(value: str | None) -> int:
    if not value or not isinstance(value, str):
        return 0
    try:
        duration = isodate.parse_duration(value)
        seconds = duration.total_seconds() if hasattr(duration, "total_seconds") else float(duration)
        return int(seconds // 60)
    except Exception:  # noqa: BLE001
        return 0
